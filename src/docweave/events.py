"""
Minimal synchronous event emitter shared by Loader and Playhead.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

Handler = Callable[[Any], Any]


class Emitter:
    """on/off/trigger with handlers called in registration order."""

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> Handler:
        """Register a handler and return it (usable as a decorator)."""
        self._handlers.setdefault(event, []).append(handler)
        return handler

    def off(self, event: str, handler: Handler | None = None) -> None:
        """Remove one handler, or every handler of the event."""
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def trigger(self, event: str, payload: Any = None) -> None:
        # Copy so handlers may unregister themselves while running
        for handler in list(self._handlers.get(event, [])):
            handler(payload)
