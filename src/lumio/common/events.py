"""Event bus connecting the assistant to its display surface."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from lumio.common.logging import get_logger


@dataclass
class Event:
    """Event message."""

    topic: str
    data: dict[str, Any]
    source: str
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], Awaitable[None]]


def topic_matches(topic: str, pattern: str) -> bool:
    """Match a dotted topic against a pattern where ``*`` is one segment."""
    topic_parts = topic.split(".")
    pattern_parts = pattern.split(".")
    if len(topic_parts) != len(pattern_parts):
        return False
    return all(p == "*" or p == t for t, p in zip(topic_parts, pattern_parts))


class EventBus:
    """In-process pub/sub owned by one assistant.

    The assistant publishes status lines, analysis results and enrollment
    transitions; the console (and tests) subscribe.

    Example:
        bus = EventBus()

        @bus.subscribe("enrollment.*")
        async def on_enrollment(event):
            print(event.topic, event.data)
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[str, EventHandler]] = []
        self.logger = get_logger("event_bus")

    async def publish(self, event: Event) -> None:
        """Deliver an event to every matching handler.

        A failing handler is logged and does not affect the others.
        """
        self.logger.debug("publishing_event", topic=event.topic, source=event.source)

        handlers = [h for pattern, h in self._handlers if topic_matches(event.topic, pattern)]
        if handlers:
            await asyncio.gather(*[self._safe_dispatch(h, event) for h in handlers])

    async def _safe_dispatch(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            self.logger.exception("event_handler_error", topic=event.topic, error=str(e))

    def subscribe(self, pattern: str, handler: EventHandler | None = None) -> Any:
        """Subscribe to a topic or ``*`` pattern.

        Can be used as a decorator or called directly; returns the handler.
        """
        if handler is not None:
            self._handlers.append((pattern, handler))
            return handler

        def decorator(fn: EventHandler) -> EventHandler:
            self._handlers.append((pattern, fn))
            return fn

        return decorator
