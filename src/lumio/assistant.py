"""Lumio assistant.

Coordinates the camera, the analysis router, speech and the enrollment flow.
Gestures arm a single-shot analysis while no enrollment is open, and drive
the enrollment prompts while one is.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from lumio.common.events import Event, EventBus
from lumio.common.logging import get_logger
from lumio.config import Config
from lumio.enrollment.flow import EnrollmentFlow
from lumio.gestures import Gesture
from lumio.identity.gallery import Gallery, GalleryRepository
from lumio.identity.matcher import IdentityMatcher
from lumio.speech.capture import SpeechCapture, create_speech_capture
from lumio.speech.narrator import Narrator, create_narrator
from lumio.types import AnalysisMode, Point
from lumio.vision.backends import VisionBackend, create_backend
from lumio.vision.camera import FrameSource, create_frame_source
from lumio.vision.router import AnalysisRouter

READY = "Lumio Ready."
SCANNING = "Scanning..."

GESTURE_MODES = {
    Gesture.DOUBLE_TAP: AnalysisMode.TEXT,
    Gesture.TRIPLE_TAP: AnalysisMode.SCENE,
    Gesture.TWO_FINGER_TAP: AnalysisMode.FACE,
    Gesture.TWO_FINGER_SWIPE: AnalysisMode.OBJECT,
}


class Assistant:
    """The coordinating context.

    Owns the display status, the gallery, the router and the enrollment
    flow. All of its methods run on one event loop.
    """

    def __init__(
        self,
        config: Config,
        backend: VisionBackend | None = None,
        frame_source: FrameSource | None = None,
        narrator: Narrator | None = None,
        capture: SpeechCapture | None = None,
        events: EventBus | None = None,
        mock_mode: bool = False,
    ) -> None:
        """Initialize the assistant.

        Components not given are created from the configuration.

        Args:
            config: Lumio configuration.
            backend: Vision backend.
            frame_source: Camera frame source.
            narrator: Spoken output.
            capture: Microphone capture for enrollment.
            events: Event bus for display surfaces.
            mock_mode: Use mock components.
        """
        self.config = config
        self.mock_mode = mock_mode or config.mock_mode
        self.logger = get_logger("assistant")

        self.events = events or EventBus()
        self.backend = backend or create_backend(config, self.mock_mode)
        self.frame_source = frame_source or create_frame_source(config, self.mock_mode)
        self.narrator = narrator or create_narrator(config, self.mock_mode)
        self.capture = capture or create_speech_capture(config, self.mock_mode)

        self.repository = GalleryRepository(
            Path(config.identity.gallery_path).expanduser(),
            storage_key=config.identity.storage_key,
        )
        self.gallery = Gallery()
        self.matcher = IdentityMatcher(config.identity.match_threshold)

        self.router = AnalysisRouter(
            self.backend,
            self.matcher,
            gallery=lambda: self.gallery,
            scene_min_confidence=config.analysis.scene_min_confidence,
            object_min_confidence=config.analysis.object_min_confidence,
            on_unknown_face=self._on_unknown_face,
        )
        self.flow = EnrollmentFlow(
            self.narrator,
            self.capture,
            on_commit=self._commit,
            on_status=self.set_status,
            events=self.events,
            listen_delay=config.enrollment.listen_delay_seconds,
            listen_timeout=config.enrollment.listen_timeout_seconds,
            final_timeout=config.enrollment.final_transcript_timeout_seconds,
        )

        self.status = ""
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load the gallery, start the camera and announce readiness."""
        self.logger.info("assistant_starting", mock_mode=self.mock_mode)

        await self.backend.setup()
        self.gallery = self.repository.load()

        self.frame_source.set_frame_handler(self.router.on_frame)
        await self.frame_source.start()
        self._running = True

        await self.set_status("Lumio Ready")
        await self.narrator.speak(READY)
        self.logger.info("assistant_started", known_faces=len(self.gallery))

    async def stop(self) -> None:
        """Stop the camera and release every resource."""
        self.logger.info("assistant_stopping")
        self._running = False

        self.router.disarm()
        self.frame_source.set_frame_handler(None)
        await self.frame_source.stop()
        await self.flow.cancel()
        await self.router.drain()
        await self.narrator.stop()
        await self.backend.teardown()

        self.logger.info("assistant_stopped")

    async def set_status(self, text: str) -> None:
        self.status = text
        await self.events.publish(Event(topic="status.changed", data={"status": text}, source="assistant"))

    async def trigger(self, mode: AnalysisMode) -> None:
        """Arm a single-shot analysis of the next frame."""
        await self.narrator.stop()
        await self.narrator.speak(SCANNING)
        await self.set_status(SCANNING)

        async def deliver(result: str) -> None:
            await self.set_status(result)
            await self.events.publish(
                Event(
                    topic="analysis.result",
                    data={"mode": mode.value, "result": result},
                    source="assistant",
                )
            )
            await self.narrator.speak(result)

        self.router.arm(mode, deliver)

    async def handle_gesture(self, gesture: Gesture) -> None:
        """Route a gesture by enrollment state."""
        self.logger.info("gesture", gesture=gesture.value, enrolling=self.flow.active)

        if self.flow.active:
            if gesture is Gesture.DOUBLE_TAP:
                await self.flow.cancel()
            elif gesture is Gesture.TRIPLE_TAP:
                await self.flow.choose_type()
            elif gesture is Gesture.TWO_FINGER_TAP:
                await self.flow.choose_speak()
            return

        await self.trigger(GESTURE_MODES[gesture])

    def get_status(self) -> dict:
        """Snapshot of every component for the console status view."""
        return {
            "status": self.status,
            "armed_mode": self.router.armed_mode.value,
            "enrollment": self.flow.state.value,
            "known_faces": len(self.gallery),
            "camera": self.frame_source.get_status(),
            "vision": self.backend.get_status(),
        }

    async def submit_typed_name(self, name: str) -> bool:
        return await self.flow.submit_typed_name(name)

    async def _on_unknown_face(self, signature: list[Point]) -> None:
        await self.flow.begin(signature)

    async def _commit(self, name: str, signature: list[Point]) -> None:
        self.gallery.enroll(name, signature)
        saved = await asyncio.to_thread(self.repository.save, self.gallery)
        self.logger.info("face_enrolled", name=name, saved=saved, known_faces=len(self.gallery))
        await self.events.publish(
            Event(
                topic="gallery.saved",
                data={"name": name, "saved": saved, "faces": len(self.gallery)},
                source="assistant",
            )
        )
