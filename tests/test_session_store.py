import json

import pytest

from conftest import FlakyStorage
from models.errors import PreconditionFailed
from models.session_models import Turn, TurnRole
from services.diagnosis.history_compaction import HISTORY_BYTE_CEILING, payload_size, serialize_turns
from services.diagnosis.session_store import HISTORY_KEY, IMAGE_KEY, SessionStore
from services.image_store import ImageStore


async def persisted_turns(storage):
    raw = await storage.get(HISTORY_KEY)
    return json.loads(raw) if raw else None


class TestAppend:
    async def test_user_turn_requires_image(self, session_store):
        with pytest.raises(PreconditionFailed):
            await session_store.append_user_turn("What is this?")
        assert session_store.turns == ()

    async def test_user_turn_carries_image(self, session_store, image_store, image_b64):
        binding = await image_store.bind(image_b64, "image/png")
        turn = await session_store.append_user_turn("What is this?")
        assert turn.role is TurnRole.USER
        assert turn.attached_image == binding.data_url

    async def test_turns_keep_append_order_and_unique_ids(self, session_store, image_store, image_b64):
        await image_store.bind(image_b64)
        for index in range(5):
            await session_store.append_user_turn(f"q{index}")
            await session_store.append_assistant_turn(f"a{index}")
        texts = [turn.text for turn in session_store.turns]
        assert texts == [f"{kind}{i}" for i in range(5) for kind in ("q", "a")]
        assert len({turn.id for turn in session_store.turns}) == 10

    async def test_every_append_is_persisted(self, session_store, image_store, storage, image_b64):
        await image_store.bind(image_b64)
        await session_store.append_user_turn("q")
        await session_store.append_assistant_turn("a")
        items = await persisted_turns(storage)
        assert [item["text"] for item in items] == ["q", "a"]


class TestImageChanges:
    async def test_new_image_clears_turns(self, session_store, image_store, storage, image_b64):
        await image_store.bind(image_b64)
        await session_store.append_user_turn("q")
        await session_store.append_assistant_turn("a")
        await image_store.bind(image_b64)
        assert session_store.turns == ()
        assert await storage.get(HISTORY_KEY) is None

    async def test_image_slot_follows_binding(self, session_store, image_store, storage, image_b64):
        binding = await image_store.bind(image_b64, "image/png")
        stored = json.loads(await storage.get(IMAGE_KEY))
        assert stored["binding_id"] == binding.binding_id
        await image_store.clear()
        assert await storage.get(IMAGE_KEY) is None

    async def test_clear_keeps_image(self, session_store, image_store, storage, image_b64):
        await image_store.bind(image_b64)
        await session_store.append_user_turn("q")
        await session_store.clear()
        assert session_store.turns == ()
        assert image_store.has()
        assert await storage.get(HISTORY_KEY) is None


class TestEdit:
    async def test_edit_truncates_from_edited_turn(self, session_store, image_store, image_b64):
        await image_store.bind(image_b64)
        for index in range(3):
            await session_store.append_user_turn(f"q{index}")
            await session_store.append_assistant_turn(f"a{index}")
        before = session_store.turns
        result = await session_store.edit_turn(before[2].id, "q1 edited")
        assert result.text == "q1 edited"
        assert result.turns == before[:2]
        assert session_store.turns == before[:2]

    async def test_edit_unknown_id_is_noop(self, session_store, image_store, image_b64):
        await image_store.bind(image_b64)
        await session_store.append_user_turn("q")
        before = session_store.turns
        assert await session_store.edit_turn("missing", "text") is None
        assert session_store.turns == before

    async def test_edit_first_turn_empties_persisted_history(self, session_store, image_store, storage, image_b64):
        await image_store.bind(image_b64)
        first = await session_store.append_user_turn("q")
        await session_store.edit_turn(first.id, "new")
        assert session_store.turns == ()
        assert await storage.get(HISTORY_KEY) is None


class TestPersistenceDegradation:
    async def test_oversized_history_strips_old_images_only_in_storage(self, image_store, storage):
        session_store = SessionStore(image_store, storage)
        big_image = "A" * (300 * 1024)
        await image_store.bind(big_image)
        for index in range(20):
            await session_store.append_user_turn(f"q{index}")
            await session_store.append_assistant_turn(f"a{index}")

        items = await persisted_turns(storage)
        assert len(items) == 40
        assert all(item["attached_image"] is None for item in items[:-10])
        assert any(item["attached_image"] for item in items[-10:])
        assert len(json.dumps(items).encode("utf-8")) <= HISTORY_BYTE_CEILING
        assert all(turn.attached_image for turn in session_store.turns if turn.role is TurnRole.USER)

    async def test_write_failure_falls_back_to_ten_imageless_turns(self, image_store, db_initializer):
        storage = FlakyStorage(db_initializer, fail_writes=lambda value: "base64" in value)
        session_store = SessionStore(image_store, storage)
        await image_store.bind("QUJD")
        for index in range(8):
            await session_store.append_user_turn(f"q{index}")
            await session_store.append_assistant_turn(f"a{index}")

        items = await persisted_turns(storage)
        assert [item["text"] for item in items] == [turn.text for turn in session_store.turns[-10:]]
        assert all(item["attached_image"] is None for item in items)
        assert len(session_store.turns) == 16

    async def test_double_failure_clears_persisted_history(self, image_store, db_initializer):
        fail = {"on": False}
        storage = FlakyStorage(db_initializer, fail_writes=lambda value: fail["on"] and value.startswith("["))
        session_store = SessionStore(image_store, storage)
        await image_store.bind("QUJD")
        await session_store.append_user_turn("q0")
        assert await persisted_turns(storage)

        fail["on"] = True
        await session_store.append_assistant_turn("a0")
        assert await storage.get(HISTORY_KEY) is None
        assert [turn.text for turn in session_store.turns] == ["q0", "a0"]

    async def test_total_storage_failure_is_silent(self, image_store, db_initializer):
        storage = FlakyStorage(db_initializer, fail_writes=lambda value: True)
        storage.fail_removes = True
        session_store = SessionStore(image_store, storage)
        await image_store.bind("QUJD")
        await session_store.append_user_turn("q0")
        await session_store.append_assistant_turn("a0")
        assert len(session_store.turns) == 2

    async def test_history_over_ceiling_falls_back_to_ten_turns(self, image_store, storage):
        ten_turns = [Turn(role=TurnRole.ASSISTANT, text="x" * 100) for _ in range(10)]
        ceiling = payload_size(serialize_turns(ten_turns)) + 500
        session_store = SessionStore(image_store, storage, byte_ceiling=ceiling)
        await image_store.bind("QUJD")
        for _ in range(15):
            await session_store.append_assistant_turn("x" * 100)

        items = await persisted_turns(storage)
        assert len(items) == 10
        assert payload_size(json.dumps(items)) <= ceiling
        assert len(session_store.turns) == 15

    async def test_history_never_written_over_ceiling(self, image_store, storage):
        session_store = SessionStore(image_store, storage, byte_ceiling=300)
        await image_store.bind("QUJD")
        await session_store.append_assistant_turn("short")
        assert await persisted_turns(storage)

        await session_store.append_assistant_turn("y" * 1000)
        assert await storage.get(HISTORY_KEY) is None
        assert len(session_store.turns) == 2


class TestLoad:
    async def test_load_restores_turns_and_image(self, storage, image_b64):
        first_images = ImageStore()
        first = SessionStore(first_images, storage)
        binding = await first_images.bind(image_b64, "image/png")
        await first.append_user_turn("q")
        await first.append_assistant_turn("a")

        images = ImageStore()
        restored = SessionStore(images, storage)
        await restored.load()
        assert images.read().binding_id == binding.binding_id
        assert [turn.text for turn in restored.turns] == ["q", "a"]
        assert [turn.id for turn in restored.turns] == [turn.id for turn in first.turns]

    async def test_load_empty_storage(self, session_store, image_store):
        await session_store.load()
        assert session_store.turns == ()
        assert image_store.has() is False

    async def test_load_ignores_corrupt_history(self, storage, image_b64):
        images = ImageStore()
        SessionStore(images, storage)
        await images.bind(image_b64)
        await storage.set(HISTORY_KEY, "{not json")
        restored = SessionStore(ImageStore(), storage)
        await restored.load()
        assert restored.turns == ()
        assert restored.image_store.has()

    async def test_history_without_image_is_not_restored(self, storage):
        await storage.set(HISTORY_KEY, json.dumps([{"id": "1", "role": "user", "text": "q", "created_at": 1.0}]))
        store = SessionStore(ImageStore(), storage)
        await store.load()
        assert store.turns == ()
