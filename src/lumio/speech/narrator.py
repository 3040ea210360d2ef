"""Spoken output."""

from __future__ import annotations

import asyncio

from rich.console import Console

from lumio.common.logging import get_logger
from lumio.config import Config

# Words per minute at the default rate of 0.5
_BASE_WPM = 175
_MIN_WPM = 80


def rate_to_wpm(rate: float) -> int:
    """Map a 0.1-1.0 speech rate to espeak words per minute."""
    return max(_MIN_WPM, int(_BASE_WPM * rate / 0.5))


class Narrator:
    """Abstract narrator. Every ``speak`` interrupts the previous utterance."""

    async def speak(self, text: str) -> None:
        """Speak text, cancelling any utterance in progress."""
        raise NotImplementedError

    async def stop(self) -> None:
        """Stop speaking immediately."""
        raise NotImplementedError


class MockNarrator(Narrator):
    """Records utterances instead of speaking them."""

    def __init__(self) -> None:
        self.utterances: list[str] = []
        self.stop_count = 0

    async def speak(self, text: str) -> None:
        self.utterances.append(text)

    async def stop(self) -> None:
        self.stop_count += 1

    @property
    def last(self) -> str | None:
        return self.utterances[-1] if self.utterances else None


class ConsoleNarrator(Narrator):
    """Prints utterances to the terminal (mock runs)."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def speak(self, text: str) -> None:
        self.console.print(f"[bold cyan]>>[/] {text}")

    async def stop(self) -> None:
        pass


class EspeakNarrator(Narrator):
    """Speaks through an ``espeak-ng`` subprocess."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.logger = get_logger("espeak_narrator")
        self._proc: asyncio.subprocess.Process | None = None
        self._available = True

    async def speak(self, text: str) -> None:
        await self.stop()
        if not self._available:
            self.logger.info("narration_skipped", text=text)
            return

        try:
            self._proc = await asyncio.create_subprocess_exec(
                "espeak-ng",
                "-v", self.config.speech.voice.lower(),
                "-s", str(rate_to_wpm(self.config.speech.rate)),
                text,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError:
            self.logger.warning("espeak_not_available")
            self._available = False
            return

        self.logger.debug("speaking", text=text, pid=self._proc.pid)

    async def stop(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None or proc.returncode is not None:
            return

        try:
            proc.terminate()
            await proc.wait()
        except ProcessLookupError:
            pass


def create_narrator(config: Config, mock_mode: bool = False) -> Narrator:
    if mock_mode or config.mock_mode:
        return ConsoleNarrator()
    return EspeakNarrator(config)
