"""Ordered conversation history with best-effort durable persistence."""

from __future__ import annotations

import json
import logging
from typing import List, Optional, Tuple

from dal.storage_dal import StorageDAL
from models.errors import PreconditionFailed, StorageError
from models.session_models import EditResult, ImageBinding, Turn, TurnRole
from services.diagnosis.history_compaction import (
	HISTORY_BYTE_CEILING,
	CompactionResult,
	compact_history,
	fallback_history,
)
from services.diagnosis.messages import UPLOAD_REQUIRED
from services.image_store import ImageStore

LOGGER = logging.getLogger(__name__)

HISTORY_KEY = "history"
IMAGE_KEY = "image"


class SessionStore:
	"""Own the turns of one conversation and keep a durable snapshot of them.

	In-memory turns are authoritative. Storage is written after every change
	and only read by `load()` at startup; write failures are logged and never
	reach the caller.
	"""

	def __init__(
		self,
		image_store: ImageStore,
		storage: StorageDAL,
		byte_ceiling: int = HISTORY_BYTE_CEILING,
	) -> None:
		self.image_store = image_store
		self.storage = storage
		self.byte_ceiling = byte_ceiling
		self._turns: List[Turn] = []
		image_store.subscribe(self.on_image_changed)

	@property
	def turns(self) -> Tuple[Turn, ...]:
		return tuple(self._turns)

	async def load(self) -> None:
		"""Restore turns and the bound image from storage. Missing slots mean an empty session."""
		binding = await self._load_image()
		self.image_store.restore(binding)
		# History without its image cannot be continued.
		self._turns = await self._load_turns() if binding is not None else []
		LOGGER.info(
			"Loaded session: %d turns, image %s",
			len(self._turns),
			"present" if self.image_store.has() else "absent",
		)

	async def append_user_turn(self, text: str) -> Turn:
		"""Append a question carrying the current image.

		Raises:
			PreconditionFailed: If no image is bound; turns are left unchanged.
		"""
		binding = self.image_store.read()
		if binding is None:
			raise PreconditionFailed(UPLOAD_REQUIRED)
		turn = Turn(role=TurnRole.USER, text=text, attached_image=binding.data_url)
		self._turns.append(turn)
		await self._persist()
		return turn

	async def append_assistant_turn(self, text: str) -> Turn:
		turn = Turn(role=TurnRole.ASSISTANT, text=text)
		self._turns.append(turn)
		await self._persist()
		return turn

	async def edit_turn(self, turn_id: str, new_text: str) -> Optional[EditResult]:
		"""Drop the turn `turn_id` and everything after it.

		Returns None (and changes nothing) if the id is unknown. The caller
		resubmits `EditResult.text` as a fresh user turn.
		"""
		index = next((i for i, turn in enumerate(self._turns) if turn.id == turn_id), None)
		if index is None:
			return None
		del self._turns[index:]
		await self._persist()
		return EditResult(turns=self.turns, text=new_text)

	async def clear(self) -> None:
		"""Empty the conversation. The bound image is left alone."""
		self._turns.clear()
		await self._remove_history()

	async def on_image_changed(self, binding: Optional[ImageBinding]) -> None:
		"""A new (or no) image starts a new conversation."""
		self._turns.clear()
		await self._remove_history()
		try:
			if binding is None:
				await self.storage.remove(IMAGE_KEY)
			else:
				await self.storage.set(IMAGE_KEY, json.dumps(binding.to_dict()))
		except StorageError as exc:
			LOGGER.warning("Failed to persist image slot: %s", exc)

	async def _persist(self) -> None:
		if not self._turns:
			await self._remove_history()
			return

		for result in (
			compact_history(self._turns, self.byte_ceiling),
			fallback_history(self._turns, self.byte_ceiling),
		):
			if not result.fits:
				LOGGER.warning(
					"History over %d bytes even at %s stage (%d bytes)",
					self.byte_ceiling,
					result.stage.value,
					result.size,
				)
				continue
			try:
				await self._write(result)
				return
			except StorageError as exc:
				LOGGER.error("Failed to save history (%s stage): %s", result.stage.value, exc)

		await self._remove_history()

	async def _write(self, result: CompactionResult) -> None:
		await self.storage.set(HISTORY_KEY, result.payload)
		LOGGER.debug(
			"Persisted %d of %d turns (%s, %d bytes)",
			result.turn_count,
			len(self._turns),
			result.stage.value,
			result.size,
		)

	async def _remove_history(self) -> None:
		try:
			await self.storage.remove(HISTORY_KEY)
		except StorageError as exc:
			LOGGER.error("Failed to clear persisted history: %s", exc)

	async def _load_turns(self) -> List[Turn]:
		try:
			raw = await self.storage.get(HISTORY_KEY)
		except StorageError as exc:
			LOGGER.warning("Failed to read persisted history: %s", exc)
			return []
		if not raw:
			return []
		try:
			turns = [Turn.from_dict(item) for item in json.loads(raw)]
		except (ValueError, KeyError, TypeError) as exc:
			LOGGER.error("Failed to load saved history: %s", exc)
			return []
		seen = set()
		unique = []
		for turn in turns:
			if turn.id not in seen:
				seen.add(turn.id)
				unique.append(turn)
		return unique

	async def _load_image(self) -> Optional[ImageBinding]:
		try:
			raw = await self.storage.get(IMAGE_KEY)
		except StorageError as exc:
			LOGGER.warning("Failed to read persisted image: %s", exc)
			return None
		if not raw:
			return None
		try:
			return ImageBinding.from_dict(json.loads(raw))
		except (ValueError, KeyError, TypeError) as exc:
			LOGGER.error("Failed to load saved image: %s", exc)
			return None
