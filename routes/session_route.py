"""FastAPI routes for the diagnosis conversation."""

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers import session_controller

router = APIRouter(prefix="/session")


class TextPayload(BaseModel):
	text: str = ""


@router.get("")
async def get_session_route(request: Request):
	return await session_controller.get_session(request)


@router.post("/image")
async def upload_image_route(request: Request, file: UploadFile = File(...)):
	try:
		return await session_controller.upload_image(request, file)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/image")
async def remove_image_route(request: Request):
	return await session_controller.remove_image(request)


@router.post("/ask")
async def ask_route(request: Request, payload: TextPayload):
	try:
		return await session_controller.ask(request, payload.text)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/turns/{turn_id}/edit")
async def edit_turn_route(request: Request, turn_id: str, payload: TextPayload):
	try:
		return await session_controller.edit_turn(request, turn_id, payload.text)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/turns")
async def clear_history_route(request: Request):
	return await session_controller.clear_history(request)


@router.post("/new")
async def new_conversation_route(request: Request):
	return await session_controller.new_conversation(request)


@router.get("/export")
async def export_route(request: Request):
	return await session_controller.export(request)
