"""Staged reduction of persisted history to keep it under a byte ceiling.

Everything here is pure: the functions take turns and return the payload to
write. The storage write itself lives in the SessionStore.

Stages, tried in order until one fits:

    full             -> the most recent 50 turns as they are
    stripped_images  -> the same 50, images kept only on the last 10
    truncated        -> the most recent 20, no images

`fallback_history` is the last resort, used when the write itself fails or the
truncated form is still over the ceiling. Results carry `fits`; a result that
does not fit is never written.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple

from models.session_models import Turn

HISTORY_BYTE_CEILING = 4 * 1024 * 1024
MAX_PERSISTED_TURNS = 50
IMAGE_RETENTION_TURNS = 10
TRUNCATED_TURNS = 20
FALLBACK_TURNS = 10


class CompactionStage(str, Enum):
    FULL = "full"
    STRIPPED_IMAGES = "stripped_images"
    TRUNCATED = "truncated"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class CompactionResult:
    payload: str
    stage: CompactionStage
    turn_count: int
    fits: bool = True

    @property
    def size(self) -> int:
        return payload_size(self.payload)


def serialize_turns(turns: Sequence[Turn]) -> str:
    return json.dumps([turn.to_dict() for turn in turns], ensure_ascii=False)


def payload_size(payload: str) -> int:
    return len(payload.encode("utf-8"))


def strip_images(turns: Sequence[Turn], keep_recent: int = 0) -> Tuple[Turn, ...]:
    """Return copies of `turns` without images, except on the last `keep_recent`."""
    cutoff = len(turns) - keep_recent
    return tuple(
        dataclasses.replace(turn, attached_image=None) if index < cutoff and turn.attached_image else turn
        for index, turn in enumerate(turns)
    )


def compact_history(turns: Sequence[Turn], byte_ceiling: int = HISTORY_BYTE_CEILING) -> CompactionResult:
    """Return the largest persisted form of `turns` the ceiling allows."""
    recent = tuple(turns[-MAX_PERSISTED_TURNS:])
    payload = serialize_turns(recent)
    if payload_size(payload) <= byte_ceiling:
        return CompactionResult(payload, CompactionStage.FULL, len(recent))

    stripped = strip_images(recent, keep_recent=IMAGE_RETENTION_TURNS)
    payload = serialize_turns(stripped)
    if payload_size(payload) <= byte_ceiling:
        return CompactionResult(payload, CompactionStage.STRIPPED_IMAGES, len(stripped))

    truncated = strip_images(recent[-TRUNCATED_TURNS:])
    payload = serialize_turns(truncated)
    return CompactionResult(
        payload, CompactionStage.TRUNCATED, len(truncated), fits=payload_size(payload) <= byte_ceiling
    )


def fallback_history(turns: Sequence[Turn], byte_ceiling: int = HISTORY_BYTE_CEILING) -> CompactionResult:
    """Smallest useful form: the last few turns with every image removed.

    `fits` is False when even this is over the ceiling; nothing should be written then.
    """
    recent = strip_images(tuple(turns[-FALLBACK_TURNS:]))
    payload = serialize_turns(recent)
    return CompactionResult(
        payload, CompactionStage.FALLBACK, len(recent), fits=payload_size(payload) <= byte_ceiling
    )
