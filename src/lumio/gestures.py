"""Touch gestures and tap counting."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable

from lumio.common.logging import get_logger

GestureHandler = Callable[["Gesture"], Awaitable[None]]

# Maximum gap between taps of one gesture
DEFAULT_TAP_WINDOW = 0.35


class Gesture(Enum):
    """Recognized gestures."""

    DOUBLE_TAP = "double_tap"
    TRIPLE_TAP = "triple_tap"
    TWO_FINGER_TAP = "two_finger_tap"
    TWO_FINGER_SWIPE = "two_finger_swipe"


GESTURE_GUIDE: list[tuple[Gesture, str, str]] = [
    (Gesture.DOUBLE_TAP, "Read text", "Cancel adding a person"),
    (Gesture.TRIPLE_TAP, "Describe scene", "Type the name"),
    (Gesture.TWO_FINGER_TAP, "Recognize face", "Speak the name"),
    (Gesture.TWO_FINGER_SWIPE, "Identify object", "Ignored"),
]


class TapCounter:
    """Resolve single-finger taps into double and triple taps.

    A double tap is only reported once the window after the second tap has
    elapsed without a third; a third tap reports a triple tap at once.
    """

    def __init__(self, on_gesture: GestureHandler, window: float = DEFAULT_TAP_WINDOW) -> None:
        self.on_gesture = on_gesture
        self.window = window
        self.logger = get_logger("tap_counter")
        self._count = 0
        self._timer: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._count

    async def tap(self) -> None:
        """Register one single-finger tap."""
        self._cancel_timer()
        self._count += 1

        if self._count >= 3:
            self._count = 0
            await self._emit(Gesture.TRIPLE_TAP)
            return

        self._timer = asyncio.create_task(self._expire(), name="tap-window")

    async def _expire(self) -> None:
        await asyncio.sleep(self.window)
        count, self._count = self._count, 0
        self._timer = None
        if count != 2:
            self.logger.debug("taps_discarded", count=count)
            return

        try:
            await self._emit(Gesture.DOUBLE_TAP)
        except Exception as e:
            self.logger.exception("gesture_handler_failed", gesture=Gesture.DOUBLE_TAP.value, error=str(e))

    async def _emit(self, gesture: Gesture) -> None:
        self.logger.debug("gesture_recognized", gesture=gesture.value)
        await self.on_gesture(gesture)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def reset(self) -> None:
        self._cancel_timer()
        self._count = 0
