"""Run one question/answer turn against the diagnosis endpoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from models.errors import PreconditionFailed, ValidationError
from models.outcome import Outcome, RawResult, TransportFailure
from models.session_models import ImageBinding, Turn
from services.diagnosis.messages import UPLOAD_REQUIRED
from services.diagnosis.response_classifier import classify, display_text
from services.diagnosis.session_store import SessionStore
from services.image_store import ImageStore

LOGGER = logging.getLogger(__name__)

DIAGNOSE_PATH = "/api/diagnose"
DEFAULT_TIMEOUT_SECONDS = 45.0


@dataclass(frozen=True)
class AskResult:
	user_turn: Turn
	# None when the image changed while the request was in flight.
	assistant_turn: Optional[Turn]
	outcome: Outcome


class DiagnosisClient:
	"""Validate, request, classify and record a turn.

	Every request that is actually sent ends in an assistant turn, failed or
	not, unless the image was replaced meanwhile: that conversation is gone. Nothing is retried; a new turn needs a new `ask` call. Callers must
	not run two `ask` calls for the same session concurrently.
	"""

	def __init__(
		self,
		image_store: ImageStore,
		session_store: SessionStore,
		http_client: httpx.AsyncClient,
		endpoint: str = DIAGNOSE_PATH,
		timeout: float = DEFAULT_TIMEOUT_SECONDS,
	) -> None:
		self.image_store = image_store
		self.session_store = session_store
		self.http_client = http_client
		self.endpoint = endpoint
		self.timeout = timeout

	async def ask(self, text: str) -> AskResult:
		"""Ask a question about the bound image.

		Raises:
			ValidationError: If the question is empty or whitespace.
			PreconditionFailed: If no image is bound. No request is made.
		"""
		question = _require_text(text)
		binding = self.image_store.read()
		if binding is None:
			raise PreconditionFailed(UPLOAD_REQUIRED)

		user_turn = await self.session_store.append_user_turn(question)
		raw = await self._request(question, binding)
		outcome = classify(raw)
		LOGGER.info("Turn %s classified as %s", user_turn.id, outcome.kind.value)
		current = self.image_store.read()
		if current is None or current.binding_id != binding.binding_id:
			LOGGER.info("Image changed during turn %s; dropping its answer", user_turn.id)
			return AskResult(user_turn=user_turn, assistant_turn=None, outcome=outcome)
		assistant_turn = await self.session_store.append_assistant_turn(display_text(outcome))
		return AskResult(user_turn=user_turn, assistant_turn=assistant_turn, outcome=outcome)

	async def resend_edited(self, turn_id: str, new_text: str) -> Optional[AskResult]:
		"""Discard `turn_id` and everything after it, then ask `new_text` as a new turn.

		Returns None when the turn does not exist.
		"""
		question = _require_text(new_text)
		if not self.image_store.has():
			raise PreconditionFailed(UPLOAD_REQUIRED)
		edit = await self.session_store.edit_turn(turn_id, question)
		if edit is None:
			return None
		return await self.ask(edit.text)

	async def _request(self, question: str, binding: ImageBinding) -> RawResult:
		# httpx timeouts are per phase; wait_for bounds the whole exchange.
		try:
			response = await asyncio.wait_for(
				self.http_client.post(
					self.endpoint,
					json={"question": question, "image_b64": binding.data},
					timeout=self.timeout,
				),
				self.timeout,
			)
		except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
			LOGGER.warning("Diagnosis request timed out after %ss: %s", self.timeout, exc)
			return RawResult(transport_failure=TransportFailure.TIMEOUT)
		except httpx.HTTPError as exc:
			LOGGER.warning("Diagnosis request failed: %s", exc)
			return RawResult(transport_failure=TransportFailure.NETWORK)
		if response.is_error:
			LOGGER.warning("Diagnosis endpoint returned %s: %s", response.status_code, response.text[:200])
		return RawResult(status_code=response.status_code, text=response.text)


def _require_text(text: Optional[str]) -> str:
	question = (text or "").strip()
	if not question:
		raise ValidationError("Question text must not be empty.")
	return question
