"""Shared pytest fixtures for the session core and HTTP tests."""

import base64
import io
import json
from typing import Callable, List

import httpx
import pytest
from PIL import Image

from dal.storage_dal import StorageDAL
from models.errors import StorageError
from services.diagnosis.session_store import SessionStore
from services.image_store import ImageStore
from utils.database_init import AsyncDatabaseInitializer


def make_image_bytes(fmt: str = "PNG", size=(8, 8), color=(200, 120, 90)) -> bytes:
    """Return a tiny real image encoded with Pillow."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_image_b64(fmt: str = "PNG") -> str:
    return base64.b64encode(make_image_bytes(fmt)).decode("ascii")


class FlakyStorage(StorageDAL):
    """StorageDAL whose writes fail while `fail_writes` says so.

    `fail_writes` is called with the value being written; returning True makes
    that write raise StorageError.
    """

    def __init__(self, db_initializer, fail_writes: Callable[[str], bool]) -> None:
        super().__init__(db_initializer)
        self.fail_writes = fail_writes
        self.fail_removes = False
        self.attempts: List[str] = []

    async def set(self, key: str, value: str) -> None:
        self.attempts.append(value)
        if self.fail_writes(value):
            raise StorageError("simulated write failure")
        await super().set(key, value)

    async def remove(self, key: str) -> bool:
        if self.fail_removes:
            raise StorageError("simulated remove failure")
        return await super().remove(key)


@pytest.fixture
def db_initializer(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def storage(db_initializer):
    return StorageDAL(db_initializer)


@pytest.fixture
def image_store():
    return ImageStore()


@pytest.fixture
def session_store(image_store, storage):
    return SessionStore(image_store, storage)


@pytest.fixture
def image_b64():
    return make_image_b64()


def json_handler(status_code: int, body, calls: list = None):
    """Build a MockTransport handler returning a fixed JSON response."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(json.loads(request.content or b"{}"))
        return httpx.Response(status_code, json=body)

    return handler
