"""Session domain models for the single-image diagnosis conversation."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4


class TurnRole(str, Enum):
	USER = "user"
	ASSISTANT = "assistant"


@dataclass(frozen=True)
class ImageBinding:
	"""The image currently associated with the session.

	`data` is base64 without a data-URL prefix. `binding_id` is unique per
	bind call, so two bindings of identical bytes are still different bindings.
	"""

	data: str
	media_type: str = "image/jpeg"
	binding_id: str = field(default_factory=lambda: uuid4().hex)
	bound_at: float = field(default_factory=lambda: time.time())

	@property
	def data_url(self) -> str:
		return f"data:{self.media_type};base64,{self.data}"

	def to_dict(self) -> Dict[str, Any]:
		return {
			"data": self.data,
			"media_type": self.media_type,
			"binding_id": self.binding_id,
			"bound_at": self.bound_at,
		}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> "ImageBinding":
		return cls(
			data=str(raw["data"]),
			media_type=str(raw.get("media_type") or "image/jpeg"),
			binding_id=str(raw.get("binding_id") or uuid4().hex),
			bound_at=float(raw.get("bound_at") or time.time()),
		)


@dataclass(frozen=True)
class Turn:
	"""One user question or one assistant answer."""

	role: TurnRole
	text: str
	attached_image: Optional[str] = None
	id: str = field(default_factory=lambda: uuid4().hex)
	created_at: float = field(default_factory=lambda: time.time())

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"role": self.role.value,
			"text": self.text,
			"attached_image": self.attached_image,
			"created_at": self.created_at,
		}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> "Turn":
		return cls(
			id=str(raw["id"]),
			role=TurnRole(raw["role"]),
			text=str(raw["text"]),
			attached_image=raw.get("attached_image"),
			created_at=float(raw["created_at"]),
		)


@dataclass(frozen=True)
class EditResult:
	"""Turns left after an edit, plus the text to resubmit as a fresh turn."""

	turns: Tuple[Turn, ...]
	text: str
