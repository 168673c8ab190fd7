"""Turn a raw diagnosis request result into exactly one Outcome."""

from __future__ import annotations

import json
from typing import Any, Optional

from models.outcome import Outcome, OutcomeKind, RawResult, TransportFailure
from services.diagnosis.messages import DISCLAIMER, OUTCOME_MESSAGES

# Probed in order; the first non-empty string wins.
TEXT_FIELDS = ("response", "answer", "result", "text", "message", "content", "analysis", "diagnosis")

UPSTREAM_ERROR_MARKER = "LLaVA Error"


def extract_text(body: Any) -> Optional[str]:
	"""Return the answer text from a decoded response body, or None."""
	if isinstance(body, str):
		return body or None
	if isinstance(body, dict):
		for name in TEXT_FIELDS:
			value = body.get(name)
			if isinstance(value, str) and value:
				return value
		return None
	if isinstance(body, list) and body:
		return extract_text(body[0])
	return None


def has_upstream_failure_marker(body: Any) -> bool:
	"""True when a 2xx body actually reports a failed analysis.

	The upstream answers some analysis failures with HTTP 200 and the error
	text inside `answer`; the local endpoint re-labels those with
	`upstream_error: true`.
	"""
	if not isinstance(body, dict):
		return False
	if body.get("upstream_error") is True:
		return True
	answer = body.get("answer")
	return isinstance(answer, str) and UPSTREAM_ERROR_MARKER in answer


def with_disclaimer(text: str) -> str:
	"""Append the medical disclaimer unless it is already there."""
	if text.endswith(DISCLAIMER):
		return text
	return text + DISCLAIMER


def _classify_status(status: int) -> Optional[OutcomeKind]:
	if status == 400:
		return OutcomeKind.BAD_REQUEST
	if status == 405:
		# The endpoint exists but is misconfigured; not the caller's fault.
		return OutcomeKind.SERVICE_UNAVAILABLE
	if status == 408:
		return OutcomeKind.TIMEOUT
	if status == 429:
		return OutcomeKind.RATE_LIMITED
	if status >= 500:
		return OutcomeKind.SERVICE_UNAVAILABLE
	if not 200 <= status < 300:
		return OutcomeKind.SERVICE_UNAVAILABLE
	return None


def classify(raw: RawResult) -> Outcome:
	"""Map a request attempt to an Outcome. Pure; never retries."""
	if raw.transport_failure is TransportFailure.TIMEOUT:
		return Outcome(OutcomeKind.TIMEOUT)
	if raw.transport_failure is not None or raw.status_code is None:
		return Outcome(OutcomeKind.NETWORK_FAILURE)

	kind = _classify_status(raw.status_code)
	if kind is not None:
		return Outcome(kind)

	try:
		body = json.loads(raw.text)
	except ValueError:
		return Outcome(OutcomeKind.MALFORMED)

	if has_upstream_failure_marker(body):
		return Outcome(OutcomeKind.SERVICE_UNAVAILABLE)
	if isinstance(body, dict) and body.get("unexpected_format") is True:
		return Outcome(OutcomeKind.MALFORMED)

	text = extract_text(body)
	if text is None:
		return Outcome(OutcomeKind.MALFORMED)
	return Outcome.answered(with_disclaimer(text))


def display_text(outcome: Outcome) -> str:
	"""Text for the assistant turn: the answer, or the fixed message for the kind."""
	if outcome.is_answer:
		return outcome.text or ""
	return OUTCOME_MESSAGES[outcome.kind]
