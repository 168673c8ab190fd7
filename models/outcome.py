"""Normalized result of one diagnosis request."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class OutcomeKind(str, Enum):
	ANSWERED = "answered"
	SERVICE_UNAVAILABLE = "service_unavailable"
	RATE_LIMITED = "rate_limited"
	BAD_REQUEST = "bad_request"
	TIMEOUT = "timeout"
	MALFORMED = "malformed"
	NETWORK_FAILURE = "network_failure"


class TransportFailure(str, Enum):
	TIMEOUT = "timeout"
	NETWORK = "network"


@dataclass(frozen=True)
class RawResult:
	"""One request attempt as seen on the wire, before classification.

	Either `transport_failure` is set (no response arrived) or `status_code`
	and `text` hold the response.
	"""

	status_code: Optional[int] = None
	text: str = ""
	transport_failure: Optional[TransportFailure] = None


@dataclass(frozen=True)
class Outcome:
	kind: OutcomeKind
	text: Optional[str] = None

	@classmethod
	def answered(cls, text: str) -> "Outcome":
		return cls(kind=OutcomeKind.ANSWERED, text=text)

	@property
	def is_answer(self) -> bool:
		return self.kind is OutcomeKind.ANSWERED
