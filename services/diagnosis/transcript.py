"""Displayable views of turns and the plain-text conversation export."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from models.session_models import Turn, TurnRole

_BOLD = re.compile(r"\*\*(.*?)\*\*")
_BLANK_RUNS = re.compile(r"\n\n+")

EXPORT_WIDTH = 80
TURN_SEPARATOR_WIDTH = 60


def turn_view(turn: Turn) -> Dict[str, Any]:
	"""Return the JSON-friendly view the UI renders for one turn."""
	return {
		"id": turn.id,
		"role": turn.role.value,
		"text": turn.text,
		"has_image": turn.attached_image is not None,
		"image": turn.attached_image,
		"created_at": datetime.fromtimestamp(turn.created_at).isoformat(),
	}


def plain_text(text: str) -> str:
	"""Drop bold markup and collapse blank-line runs."""
	return _BLANK_RUNS.sub("\n\n", _BOLD.sub(r"\1", text)).strip()


def _format_timestamp(moment: datetime) -> str:
	return moment.strftime("%B %d, %Y at %I:%M:%S %p")


def _format_turn(turn: Turn) -> str:
	sender = "USER" if turn.role is TurnRole.USER else "V-SIDS AI"
	separator = "=" * TURN_SEPARATOR_WIDTH
	lines = f"{separator}\n{sender} - {_format_timestamp(datetime.fromtimestamp(turn.created_at))}\n{separator}\n\n"
	if turn.attached_image and turn.role is TurnRole.USER:
		lines += "[IMAGE ATTACHED: Skin concern photo]\n\n"
	return lines + plain_text(turn.text) + "\n\n"


def export_conversation(turns: Sequence[Turn], now: Optional[datetime] = None) -> str:
	"""Render the whole conversation as a downloadable text document."""
	now = now or datetime.now()
	rule = "=" * EXPORT_WIDTH
	header = (
		"V-SIDS CONVERSATION EXPORT\n"
		f"Generated on: {_format_timestamp(now)}\n"
		f"Total Messages: {len(turns)}\n\n"
		f"{rule}\nMEDICAL DISCLAIMER\n{rule}\n\n"
		"This conversation is for informational purposes only and should not replace\n"
		"professional medical advice. Please consult with a qualified dermatologist\n"
		"or healthcare provider for proper diagnosis and treatment.\n\n"
		f"{rule}\nCONVERSATION HISTORY\n{rule}\n\n"
	)
	return header + "\n".join(_format_turn(turn) for turn in turns)


def export_filename(now: Optional[datetime] = None) -> str:
	now = now or datetime.now()
	return f"V-SIDS-Conversation-{now.date().isoformat()}.txt"
