"""Enrollment of an unknown face.

When face analysis finds no match, the signature is held in a session while
the user names the person, either by speaking the name or by typing it.
Both inputs may run at once; whichever produces a name first commits and
the other is abandoned.

States::

    IDLE -> AWAITING_INPUT_CHOICE -> (LISTENING | TYPING) -> IDLE
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from lumio.common.events import Event, EventBus
from lumio.common.logging import get_logger
from lumio.speech.capture import SpeechCapture
from lumio.speech.narrator import Narrator
from lumio.types import Point, Signature

CommitHandler = Callable[[str, list[Point]], Awaitable[None]]
StatusHandler = Callable[[str], Awaitable[None]]

ENROLLMENT_PROMPT = (
    "Unknown person detected. Two-finger tap to speak their name, "
    "triple tap to type, or double tap to cancel."
)
LISTENING_PROMPT = "Listening for name."
KEYBOARD_PROMPT = "Keyboard open. Type the name and press save."
RETRY_HINT = "I didn't catch that. Double tap to cancel."
RETRY_STATUS = "Didn't catch the name."
MIC_UNAVAILABLE = "Microphone unavailable."
CANCELLED = "Cancelled adding person."


class EnrollmentState(Enum):
    """Enrollment flow state."""

    IDLE = "idle"
    AWAITING_INPUT_CHOICE = "awaiting_input_choice"
    LISTENING = "listening"
    TYPING = "typing"


@dataclass
class EnrollmentSession:
    """Pending enrollment of one face."""

    signature: list[Point]
    typing: bool = False
    listening: bool = False
    listen_task: asyncio.Task | None = None
    capture_buffer: str = ""


class EnrollmentFlow:
    """State machine for naming an unknown face."""

    def __init__(
        self,
        narrator: Narrator,
        capture: SpeechCapture,
        on_commit: CommitHandler,
        on_status: StatusHandler | None = None,
        events: EventBus | None = None,
        listen_delay: float = 1.5,
        listen_timeout: float = 4.0,
        final_timeout: float = 1.0,
    ) -> None:
        """Initialize the flow.

        Args:
            narrator: Spoken output.
            capture: Microphone capture, owned by the flow while listening.
            on_commit: Persists (name, signature) into the gallery.
            on_status: Receives short status lines for display.
            events: Bus for enrollment.* events.
            listen_delay: Pause before the microphone opens, so the
                listening prompt is not transcribed.
            listen_timeout: Hard ceiling on one listening attempt.
            final_timeout: How long to wait for the final transcript once
                the ceiling ends the audio.
        """
        self.narrator = narrator
        self.capture = capture
        self.on_commit = on_commit
        self.on_status = on_status
        self.events = events
        self.listen_delay = listen_delay
        self.listen_timeout = listen_timeout
        self.final_timeout = final_timeout
        self.logger = get_logger("enrollment_flow")

        self._session: EnrollmentSession | None = None

    @property
    def session(self) -> EnrollmentSession | None:
        return self._session

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def state(self) -> EnrollmentState:
        session = self._session
        if session is None:
            return EnrollmentState.IDLE
        if session.listening:
            return EnrollmentState.LISTENING
        if session.typing:
            return EnrollmentState.TYPING
        return EnrollmentState.AWAITING_INPUT_CHOICE

    async def _status(self, text: str) -> None:
        if self.on_status is not None:
            await self.on_status(text)

    async def _publish(self, topic: str, **data: object) -> None:
        if self.events is not None:
            await self.events.publish(Event(topic=topic, data=dict(data), source="enrollment"))

    async def begin(self, signature: Signature) -> bool:
        """Open a session for an unmatched face.

        Returns:
            False if a session is already open.
        """
        if self._session is not None:
            self.logger.warning("enrollment_already_active")
            return False

        self._session = EnrollmentSession(signature=[(float(x), float(y)) for x, y in signature])
        self.logger.info("enrollment_started", points=len(self._session.signature))

        await self._status("Waiting for name...")
        await self.narrator.speak(ENROLLMENT_PROMPT)
        await self._publish("enrollment.waiting", points=len(self._session.signature))
        return True

    async def choose_speak(self) -> None:
        """Start listening for the spoken name."""
        session = self._session
        if session is None or session.listening:
            return

        await self.narrator.stop()
        await self.narrator.speak(LISTENING_PROMPT)

        session.listening = True
        session.capture_buffer = ""
        session.listen_task = asyncio.create_task(self._listen(session), name="enrollment-listen")
        await self._publish("enrollment.listening")

    async def choose_type(self) -> None:
        """Open the text-entry surface."""
        session = self._session
        if session is None:
            return

        await self.narrator.stop()
        await self.narrator.speak(KEYBOARD_PROMPT)

        session.typing = True
        await self._publish("enrollment.typing")

    async def submit_typed_name(self, name: str) -> bool:
        """Save action on the text-entry surface.

        Returns:
            True if the name was committed.
        """
        session = self._session
        if session is None or not session.typing:
            return False

        name = name.strip()
        if not name:
            self.logger.debug("empty_typed_name")
            return False

        await self._commit(name)
        return True

    async def cancel(self) -> None:
        """Abandon the session. A no-op when idle."""
        session = self._session
        if session is None:
            return
        self._session = None

        await self._stop_listening(session)
        await self.narrator.stop()

        self.logger.info("enrollment_cancelled")
        await self._status("Cancelled.")
        await self.narrator.speak(CANCELLED)
        await self._publish("enrollment.cancelled")

    async def wait_for_listening(self) -> None:
        """Wait until the current listening attempt has finished."""
        session = self._session
        if session is None or session.listen_task is None:
            return
        try:
            await session.listen_task
        except asyncio.CancelledError:
            pass

    async def _listen(self, session: EnrollmentSession) -> None:
        started = False
        collector: asyncio.Task | None = None
        try:
            await asyncio.sleep(self.listen_delay)

            try:
                await self.capture.start()
                started = True
            except Exception as e:
                self.logger.exception("capture_start_failed", error=str(e))
                await self._status(MIC_UNAVAILABLE)
                await self.narrator.speak(MIC_UNAVAILABLE)
                return

            collector = asyncio.create_task(self._collect(session), name="enrollment-collect")
            try:
                await asyncio.wait_for(asyncio.shield(collector), timeout=self.listen_timeout)
            except asyncio.TimeoutError:
                self.logger.info("listening_timeout", transcript=session.capture_buffer)
                # Ending the audio makes the recognizer emit its final result
                await self._release_capture()
                try:
                    await asyncio.wait_for(collector, timeout=self.final_timeout)
                except asyncio.TimeoutError:
                    self.logger.warning("final_transcript_timeout", transcript=session.capture_buffer)
        finally:
            session.listening = False
            if collector is not None and not collector.done():
                collector.cancel()
                await asyncio.gather(collector, return_exceptions=True)
            if started:
                await self._release_capture()

        if self._session is not session:
            return

        name = session.capture_buffer.strip()
        if name:
            await self._commit(name)
        else:
            await self._status(RETRY_STATUS)
            await self.narrator.speak(RETRY_HINT)
            await self._publish("enrollment.retry")

    async def _collect(self, session: EnrollmentSession) -> None:
        try:
            async for transcript in self.capture.transcripts():
                # An empty final result keeps the last partial
                if transcript.text.strip():
                    session.capture_buffer = transcript.text
                if transcript.is_final:
                    return
        except Exception as e:
            self.logger.exception("transcription_failed", error=str(e))

    async def _release_capture(self) -> None:
        try:
            await self.capture.stop()
        except Exception as e:
            self.logger.warning("capture_release_failed", error=str(e))

    async def _stop_listening(self, session: EnrollmentSession) -> None:
        task = session.listen_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await self._release_capture()

    async def _commit(self, name: str) -> None:
        session = self._session
        if session is None:
            return
        self._session = None

        await self._stop_listening(session)
        await self.on_commit(name, session.signature)

        self.logger.info("enrollment_saved", name=name)
        await self._status(f"Saved {name}.")
        await self.narrator.speak(f"Saved {name}. I will recognize them next time.")
        await self._publish("enrollment.saved", name=name)
