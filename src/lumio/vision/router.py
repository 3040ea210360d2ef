"""Single-shot frame analysis router.

A request is armed with a mode and a result callback. The next frame that
arrives is consumed by that request: the armed mode is cleared before the
classifier runs, so frames arriving during classification are dropped
rather than queued, and each arming produces at most one result.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from lumio.common.logging import get_logger
from lumio.identity.gallery import Gallery
from lumio.identity.matcher import IdentityMatcher
from lumio.types import AnalysisMode, Classification, Frame, Point
from lumio.vision.backends import VisionBackend

ResultCallback = Callable[[str], Awaitable[None]]
UnknownFaceHandler = Callable[[list[Point]], Awaitable[None]]

NO_TEXT = "No text found."
SCENE_UNCLEAR = "Scene unclear."
MODEL_NOT_LOADED = "Model not loaded."
OBJECT_UNKNOWN = "Cannot identify object."
OBJECT_UNCLEAR = "Object unclear, try getting closer."
NO_FACE = "No face clearly visible."
UNKNOWN_PERSON = "Unknown person."

_EMPTY_RESULT = {
    AnalysisMode.TEXT: NO_TEXT,
    AnalysisMode.SCENE: SCENE_UNCLEAR,
    AnalysisMode.OBJECT: OBJECT_UNKNOWN,
    AnalysisMode.FACE: NO_FACE,
}


def indefinite_article(word: str) -> str:
    """Return "an" for words starting with a vowel letter, else "a"."""
    return "an" if word[:1] in ("a", "e", "i", "o", "u") else "a"


def format_text(lines: Sequence[str]) -> str:
    text = " ".join(line for line in lines if line)
    return text if text else NO_TEXT


def format_scene(results: Sequence[Classification], min_confidence: float = 0.6) -> str:
    valid = sorted(
        (r for r in results if r.confidence > min_confidence),
        key=lambda r: r.confidence,
        reverse=True,
    )
    if len(valid) >= 2:
        return f"This looks like a scene with {valid[0].label} and {valid[1].label}."
    if valid:
        return f"This appears to be {valid[0].label}."
    return SCENE_UNCLEAR


def format_object(results: Sequence[Classification], min_confidence: float = 0.20) -> str:
    if not results:
        return OBJECT_UNKNOWN

    top = max(results, key=lambda r: r.confidence)
    if top.confidence <= min_confidence:
        return OBJECT_UNCLEAR

    # ImageNet-style labels carry synonyms after the first comma
    name = top.label.split(",", 1)[0].strip().lower()
    return f"This is {indefinite_article(name)} {name}."


@dataclass
class ArmedRequest:
    """The one outstanding analysis request."""

    mode: AnalysisMode = AnalysisMode.NONE
    callback: ResultCallback | None = None


class AnalysisRouter:
    """Consume one frame per arming and report one sentence per request."""

    def __init__(
        self,
        backend: VisionBackend,
        matcher: IdentityMatcher,
        gallery: Callable[[], Gallery],
        scene_min_confidence: float = 0.6,
        object_min_confidence: float = 0.20,
        on_unknown_face: UnknownFaceHandler | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            backend: Classifier capability.
            matcher: Face identity matcher.
            gallery: Returns the current gallery (owned by the caller).
            scene_min_confidence: Scene labels must score strictly above this.
            object_min_confidence: Top object label must score strictly above this.
            on_unknown_face: Called with the signature of an unmatched face.
        """
        self.backend = backend
        self.matcher = matcher
        self._gallery = gallery
        self.scene_min_confidence = scene_min_confidence
        self.object_min_confidence = object_min_confidence
        self.on_unknown_face = on_unknown_face
        self.logger = get_logger("analysis_router")

        self._request = ArmedRequest()
        self._tasks: set[asyncio.Task] = set()

    @property
    def armed_mode(self) -> AnalysisMode:
        return self._request.mode

    def arm(self, mode: AnalysisMode, callback: ResultCallback) -> None:
        """Arm a single-shot analysis for the next frame.

        Replaces any request still waiting for a frame; the replaced
        callback will never fire.
        """
        if self._request.mode is not AnalysisMode.NONE:
            self.logger.debug("request_replaced", previous=self._request.mode.value, mode=mode.value)

        if mode is AnalysisMode.NONE:
            self._request = ArmedRequest()
        else:
            self._request = ArmedRequest(mode=mode, callback=callback)
        self.logger.info("analysis_armed", mode=mode.value)

    def disarm(self) -> None:
        self._request = ArmedRequest()

    def on_frame(self, frame: Frame) -> asyncio.Task | None:
        """Frame handler registered with the frame source.

        Must be called on the event loop. Returns the dispatch task when the
        frame was consumed.
        """
        request = self._request
        if request.mode is AnalysisMode.NONE:
            return None

        # Clear before classifying so a second frame cannot be consumed
        self._request = ArmedRequest()

        task = asyncio.get_running_loop().create_task(
            self._dispatch(request, frame),
            name=f"analysis-{request.mode.value}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _dispatch(self, request: ArmedRequest, frame: Frame) -> None:
        self.logger.info("frame_consumed", mode=request.mode.value, frame_id=frame.frame_id)

        signature: list[Point] | None = None
        try:
            result, signature = await self.analyze(request.mode, frame)
        except Exception as e:
            self.logger.exception("analysis_failed", mode=request.mode.value, error=str(e))
            result = _EMPTY_RESULT[request.mode]

        self.logger.info("analysis_result", mode=request.mode.value, result=result)

        if request.callback is not None:
            try:
                await request.callback(result)
            except Exception as e:
                self.logger.exception("result_callback_failed", error=str(e))

        if signature is not None and self.on_unknown_face is not None:
            try:
                await self.on_unknown_face(signature)
            except Exception as e:
                self.logger.exception("unknown_face_handler_failed", error=str(e))

    async def analyze(self, mode: AnalysisMode, frame: Frame) -> tuple[str, list[Point] | None]:
        """Run one analysis.

        Returns:
            The sentence to speak, and the signature of an unknown face when
            the face analysis found no match.
        """
        if mode is AnalysisMode.TEXT:
            return format_text(await self.backend.recognize_text(frame)), None

        if mode is AnalysisMode.SCENE:
            results = await self.backend.classify_scene(frame)
            return format_scene(results, self.scene_min_confidence), None

        if mode is AnalysisMode.OBJECT:
            if not self.backend.object_model_loaded:
                return MODEL_NOT_LOADED, None
            results = await self.backend.classify_object(frame)
            return format_object(results, self.object_min_confidence), None

        if mode is AnalysisMode.FACE:
            return await self._recognize_face(frame)

        raise ValueError(f"Cannot analyze mode: {mode}")

    async def _recognize_face(self, frame: Frame) -> tuple[str, list[Point] | None]:
        signature = await self.backend.extract_face_landmarks(frame)
        if not signature:
            return NO_FACE, None

        gallery = self._gallery()
        name, drift = self.matcher.best_match(signature, gallery.items())
        self.logger.info("face_match", name=name, drift=drift, known=len(gallery))

        if name is not None:
            return f"{name} is in front of you.", None
        return UNKNOWN_PERSON, list(signature)

    async def drain(self) -> None:
        """Wait for in-flight analyses to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
