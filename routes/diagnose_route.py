"""Local diagnosis endpoint consumed by the session client."""

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from controllers.diagnose_controller import diagnose

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class DiagnosePayload(BaseModel):
	question: Optional[str] = None
	image_b64: Optional[str] = None


@router.post("/diagnose")
async def diagnose_route(request: Request, payload: DiagnosePayload):
	try:
		return await diagnose(request, payload.question, payload.image_b64)
	except Exception:
		LOGGER.exception("Diagnose endpoint failed")
		return JSONResponse({"error": "Unexpected error while processing the request"}, status_code=500)


@router.get("/diagnose")
async def diagnose_method_not_allowed():
	return JSONResponse({"error": "Method not allowed"}, status_code=405)
