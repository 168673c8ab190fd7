"""Local diagnosis endpoint: validate, short-circuit or forward to the analysis service."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from services.diagnosis.messages import TECHNICAL_DIFFICULTIES, UNEXPECTED_FORMAT, no_image_response
from services.diagnosis.response_classifier import extract_text, has_upstream_failure_marker, with_disclaimer
from services.diagnosis.upstream_client import UpstreamAnalysisClient
from utils.media_validation import strip_data_url

LOGGER = logging.getLogger(__name__)

NO_IMAGE_SENTINEL = "no-image"

# Upstream status -> (status returned to the caller, error text)
_UPSTREAM_ERRORS = {
	405: (503, "The analysis service endpoint is not configured correctly. Please try again later."),
	400: (400, "Invalid request format or image data"),
	429: (429, "Rate limit exceeded. Please try again later."),
}


def _timestamp() -> str:
	return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str) -> JSONResponse:
	return JSONResponse({"error": message}, status_code=status_code)


def _reply(text: str, **extra: Any) -> Dict[str, Any]:
	return {"response": text, "timestamp": _timestamp(), **extra}


async def diagnose(request: Request, question: Optional[str], image_b64: Optional[str]):
	"""Answer one question about an image.

	Returns a JSON body with `response` on success, or a JSONResponse carrying
	`{"error": ...}` and the mapped status code.
	"""
	question = (question or "").strip()
	if not question:
		return _error(400, "Missing required field: question")

	image_b64 = (image_b64 or "").strip()
	if not image_b64 or image_b64 == NO_IMAGE_SENTINEL:
		return _reply(no_image_response(question))

	upstream: UpstreamAnalysisClient = request.app.state.upstream_client
	try:
		response = await upstream.analyze(question, strip_data_url(image_b64))
	except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
		LOGGER.error("Analysis service timed out: %s", exc)
		return _error(408, "Request timeout. Please try again with a smaller image.")
	except httpx.HTTPError as exc:
		LOGGER.error("Analysis service request failed: %s", exc)
		return _error(502, "Unable to reach the analysis service. Please try again.")

	if response.is_error:
		LOGGER.error("Analysis service error %s: %s", response.status_code, response.text[:500])
		status_code, message = _UPSTREAM_ERRORS.get(
			response.status_code, (503, "Analysis service is currently unavailable")
		)
		if response.status_code >= 500:
			message = "Service temporarily unavailable. Please try again later."
		return _error(status_code, message)

	try:
		data = response.json()
	except ValueError:
		LOGGER.error("Analysis service returned a non-JSON body: %s", response.text[:500])
		return _reply(UNEXPECTED_FORMAT, unexpected_format=True)

	if has_upstream_failure_marker(data):
		LOGGER.error("Analysis service reported a failure in a 2xx body: %s", data)
		return _reply(TECHNICAL_DIFFICULTIES, upstream_error=True)

	text = extract_text(data)
	if text is None:
		LOGGER.warning("Unexpected analysis response shape: %s", data)
		return _reply(UNEXPECTED_FORMAT, unexpected_format=True)
	return _reply(with_disclaimer(text))
