"""Typed event bus — publish/subscribe with pattern matching (e.g. 'movement:*')."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

from ..types import PieceEvent

logger = logging.getLogger(__name__)

Handler = Callable[[PieceEvent], Any]


class EventBus:
    """Outbound lifecycle channel handed to a PieceEngine at construction.

    Handlers may be plain functions or coroutines. A failing handler is logged
    and never interrupts the piece.
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._wildcard: list[Handler] = []

    def on(self, event_type: str, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def on_pattern(self, pattern: str, handler: Handler) -> None:
        self._handlers[pattern].append(handler)

    def on_all(self, handler: Handler) -> None:
        self._wildcard.append(handler)

    def off(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
        if handler in self._wildcard:
            self._wildcard.remove(handler)

    async def emit(self, event: PieceEvent) -> None:
        event_type = getattr(event, "type", "")
        # Exact match + wildcard
        for h in self._handlers.get(event_type, []) + self._wildcard:
            await self._dispatch(h, event, event_type)
        # Pattern match: 'movement:*' matches 'movement:start', etc.
        for pat, handlers in list(self._handlers.items()):
            if not pat.endswith(":*"):
                continue
            prefix = pat[:-1]  # 'movement:*' → 'movement:'
            if event_type.startswith(prefix):
                for h in handlers:
                    await self._dispatch(h, event, pat)

    @staticmethod
    async def _dispatch(handler: Handler, event: PieceEvent, label: str) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Event handler error for %s", label)
