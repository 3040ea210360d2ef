"""Tests for tap counting."""

import asyncio

import pytest

from lumio.gestures import Gesture, TapCounter


@pytest.fixture
def recognized() -> list:
    return []


@pytest.fixture
def counter(recognized) -> TapCounter:
    async def on_gesture(gesture: Gesture) -> None:
        recognized.append(gesture)

    return TapCounter(on_gesture, window=0.03)


class TestTapCounter:
    """Tests for TapCounter."""

    @pytest.mark.asyncio
    async def test_double_tap_after_window(self, counter, recognized):
        """Test a double tap is reported once the window closes."""
        await counter.tap()
        await counter.tap()
        assert recognized == []

        await asyncio.sleep(0.06)
        assert recognized == [Gesture.DOUBLE_TAP]
        assert counter.pending == 0

    @pytest.mark.asyncio
    async def test_triple_tap_suppresses_double(self, counter, recognized):
        """Test a triple tap never also reports a double tap."""
        await counter.tap()
        await counter.tap()
        await counter.tap()
        assert recognized == [Gesture.TRIPLE_TAP]

        await asyncio.sleep(0.06)
        assert recognized == [Gesture.TRIPLE_TAP]

    @pytest.mark.asyncio
    async def test_single_tap_ignored(self, counter, recognized):
        await counter.tap()
        await asyncio.sleep(0.06)

        assert recognized == []
        assert counter.pending == 0

    @pytest.mark.asyncio
    async def test_reset(self, counter, recognized):
        """Test reset drops pending taps."""
        await counter.tap()
        await counter.tap()
        counter.reset()
        await asyncio.sleep(0.06)

        assert recognized == []

    @pytest.mark.asyncio
    async def test_handler_error_on_double_tap(self, recognized):
        """Test a failing double-tap handler is logged and counting continues."""
        calls = []

        async def on_gesture(gesture: Gesture) -> None:
            calls.append(gesture)
            if gesture is Gesture.DOUBLE_TAP:
                raise RuntimeError("handler broke")

        counter = TapCounter(on_gesture, window=0.03)
        await counter.tap()
        await counter.tap()
        timer = counter._timer
        await asyncio.sleep(0.06)

        assert timer.done()
        assert timer.exception() is None

        await counter.tap()
        await counter.tap()
        await counter.tap()
        assert calls == [Gesture.DOUBLE_TAP, Gesture.TRIPLE_TAP]
