"""Single-slot store for the image the conversation is about.

At most one image is bound at a time. Binding replaces, never merges, and
every `bind` or `clear` call notifies subscribers exactly once, even when the
new bytes equal the old ones. There is no internal locking: the event loop is
the only writer. A multi-session server keeps one store per session.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

from models.session_models import ImageBinding

LOGGER = logging.getLogger(__name__)

ImageListener = Callable[[Optional[ImageBinding]], Awaitable[None]]


class ImageStore:
    """Hold the currently bound image and signal changes to subscribers."""

    def __init__(self) -> None:
        self._binding: Optional[ImageBinding] = None
        self._listeners: List[ImageListener] = []

    def subscribe(self, listener: ImageListener) -> None:
        """Register an async callback invoked with the new binding (or None)."""
        self._listeners.append(listener)

    async def bind(self, data: str, media_type: str = "image/jpeg") -> ImageBinding:
        """Replace the current binding unconditionally and signal the change.

        Args:
            data: Base64 image data without a data-URL prefix. Not validated here.
            media_type: MIME type of the original upload.

        Returns:
            The new binding.
        """
        binding = ImageBinding(data=data, media_type=media_type)
        self._binding = binding
        LOGGER.info("Bound image %s (%s)", binding.binding_id, media_type)
        await self._notify(binding)
        return binding

    def read(self) -> Optional[ImageBinding]:
        return self._binding

    def has(self) -> bool:
        return self._binding is not None

    async def clear(self) -> None:
        """Drop the binding and signal the change."""
        self._binding = None
        LOGGER.info("Cleared bound image")
        await self._notify(None)

    def restore(self, binding: Optional[ImageBinding]) -> None:
        """Reinstate a binding loaded from durable storage without signalling."""
        self._binding = binding

    async def _notify(self, binding: Optional[ImageBinding]) -> None:
        for listener in list(self._listeners):
            await listener(binding)
