"""Common utilities for Lumio."""

from lumio.common.logging import get_logger, setup_logging
from lumio.common.events import EventBus, Event

__all__ = [
    "get_logger",
    "setup_logging",
    "EventBus",
    "Event",
]
