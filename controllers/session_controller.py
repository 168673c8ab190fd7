"""Session UI events mapped onto the image store, session store and diagnosis client."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import PlainTextResponse

from models.errors import PreconditionFailed, ValidationError
from services.diagnosis.diagnosis_client import AskResult, DiagnosisClient
from services.diagnosis.session_store import SessionStore
from services.diagnosis.transcript import export_conversation, export_filename, turn_view
from services.image_store import ImageStore
from utils.media_validation import read_image_upload


def _image_store(request: Request) -> ImageStore:
	return request.app.state.image_store


def _session_store(request: Request) -> SessionStore:
	return request.app.state.session_store


def _image_view(store: ImageStore) -> Optional[Dict[str, Any]]:
	binding = store.read()
	if binding is None:
		return None
	return {"id": binding.binding_id, "media_type": binding.media_type}


def _ask_view(result: AskResult) -> Dict[str, Any]:
	return {
		"outcome": result.outcome.kind.value,
		"user_turn": turn_view(result.user_turn),
		"assistant_turn": turn_view(result.assistant_turn) if result.assistant_turn else None,
	}


async def get_session(request: Request) -> Dict[str, Any]:
	"""Return the bound image summary and every turn in display form."""
	image_store = _image_store(request)
	return {
		"has_image": image_store.has(),
		"image": _image_view(image_store),
		"turns": [turn_view(turn) for turn in _session_store(request).turns],
	}


async def upload_image(request: Request, file: UploadFile) -> Dict[str, Any]:
	"""Validate and bind a new image; the conversation starts over."""
	data, media_type = await read_image_upload(file, request.app.state.settings.max_image_bytes)
	image_store = _image_store(request)
	await image_store.bind(data, media_type)
	return {"image": _image_view(image_store), "turn_count": len(_session_store(request).turns)}


async def remove_image(request: Request) -> Dict[str, Any]:
	await _image_store(request).clear()
	return {"has_image": False, "turn_count": len(_session_store(request).turns)}


async def _run_turn(request: Request, coro_factory) -> Optional[AskResult]:
	lock: asyncio.Lock = request.app.state.turn_lock
	if lock.locked():
		raise HTTPException(status_code=409, detail="A question is already being answered. Please wait.")
	async with lock:
		try:
			return await coro_factory()
		except ValidationError as exc:
			raise HTTPException(status_code=400, detail=str(exc)) from exc
		except PreconditionFailed as exc:
			raise HTTPException(status_code=428, detail=str(exc)) from exc


async def ask(request: Request, text: str) -> Dict[str, Any]:
	"""Ask a question about the bound image and return both new turns."""
	client: DiagnosisClient = request.app.state.diagnosis_client
	result = await _run_turn(request, lambda: client.ask(text))
	return _ask_view(result)


async def edit_turn(request: Request, turn_id: str, text: str) -> Dict[str, Any]:
	"""Replace a question and everything after it with a fresh turn."""
	client: DiagnosisClient = request.app.state.diagnosis_client
	result = await _run_turn(request, lambda: client.resend_edited(turn_id, text))
	if result is None:
		raise HTTPException(status_code=404, detail=f"Turn {turn_id} not found")
	return _ask_view(result)


async def clear_history(request: Request) -> Dict[str, Any]:
	await _session_store(request).clear()
	return {"turn_count": 0, "has_image": _image_store(request).has()}


async def new_conversation(request: Request) -> Dict[str, Any]:
	"""Forget the conversation and the image."""
	await _session_store(request).clear()
	await _image_store(request).clear()
	return {"turn_count": 0, "has_image": False}


async def export(request: Request) -> PlainTextResponse:
	"""Return the conversation as a text file download."""
	turns = _session_store(request).turns
	if not turns:
		raise HTTPException(status_code=404, detail="There is no conversation to export")
	return PlainTextResponse(
		export_conversation(turns),
		headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
	)
