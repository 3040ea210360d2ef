"""Tests for the analysis router."""

import pytest

from lumio.identity.gallery import Gallery
from lumio.types import AnalysisMode, Classification
from lumio.vision.backends import MockVisionBackend
from lumio.vision.router import (
    MODEL_NOT_LOADED,
    NO_FACE,
    NO_TEXT,
    OBJECT_UNCLEAR,
    OBJECT_UNKNOWN,
    SCENE_UNCLEAR,
    UNKNOWN_PERSON,
    AnalysisRouter,
    format_object,
    format_scene,
    format_text,
    indefinite_article,
)


class Recorder:
    """Async result callback that records what it receives."""

    def __init__(self) -> None:
        self.results: list[str] = []

    async def __call__(self, result: str) -> None:
        self.results.append(result)


def make_router(backend, matcher, gallery=None, on_unknown_face=None):
    gallery = gallery if gallery is not None else Gallery()
    return AnalysisRouter(
        backend,
        matcher,
        gallery=lambda: gallery,
        on_unknown_face=on_unknown_face,
    )


class TestFormatting:
    """Tests for result sentence formatting."""

    def test_format_text_joins_lines(self):
        assert format_text(["EXIT", "Platform 4"]) == "EXIT Platform 4"

    def test_format_text_empty(self):
        assert format_text([]) == NO_TEXT
        assert format_text(["", ""]) == NO_TEXT

    def test_format_scene_two_labels(self):
        """Test the two most confident labels are named, best first."""
        results = [
            Classification("indoor", 0.71),
            Classification("outdoor", 0.1),
            Classification("kitchen", 0.82),
        ]
        assert format_scene(results) == "This looks like a scene with kitchen and indoor."

    def test_format_scene_one_label(self):
        results = [Classification("beach", 0.9), Classification("sky", 0.3)]
        assert format_scene(results) == "This appears to be beach."

    def test_format_scene_threshold_is_strict(self):
        """Test a label at exactly the threshold is not reported."""
        assert format_scene([Classification("beach", 0.6)]) == SCENE_UNCLEAR

    def test_format_scene_empty(self):
        assert format_scene([]) == SCENE_UNCLEAR

    def test_format_object(self):
        """Test the first synonym is used, lower-cased."""
        results = [Classification("Coffee Mug, mug", 0.64), Classification("cup", 0.2)]
        assert format_object(results) == "This is a coffee mug."

    def test_format_object_vowel_article(self):
        assert format_object([Classification("apple", 0.9)]) == "This is an apple."

    def test_format_object_low_confidence(self):
        """Test confidence at the threshold is unclear."""
        assert format_object([Classification("cup", 0.2)]) == OBJECT_UNCLEAR

    def test_format_object_empty(self):
        assert format_object([]) == OBJECT_UNKNOWN

    def test_format_object_dog_breed(self):
        """Test a synonym-laden label just above the threshold."""
        results = [Classification("golden retriever, dog", 0.25)]
        assert format_object(results) == "This is a golden retriever."

    def test_format_object_low_confidence_breed(self):
        results = [Classification("golden retriever, dog", 0.10)]
        assert format_object(results) == OBJECT_UNCLEAR

    def test_format_scene_kitchen_indoor_wood(self):
        """Test the weak third label is left out."""
        results = [
            Classification("kitchen", 0.8),
            Classification("indoor", 0.65),
            Classification("wood", 0.3),
        ]
        assert format_scene(results) == "This looks like a scene with kitchen and indoor."

    def test_indefinite_article(self):
        assert indefinite_article("umbrella") == "an"
        assert indefinite_article("mug") == "a"
        assert indefinite_article("") == "a"


class TestAnalysisRouter:
    """Tests for AnalysisRouter."""

    @pytest.mark.asyncio
    async def test_unarmed_frame_ignored(self, matcher, frame):
        """Test frames are dropped while nothing is armed."""
        backend = MockVisionBackend(text_lines=["EXIT"])
        router = make_router(backend, matcher)

        assert router.on_frame(frame) is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_single_shot(self, matcher, frame):
        """Test one arming consumes exactly one frame."""
        backend = MockVisionBackend(text_lines=["EXIT", "Platform 4"])
        router = make_router(backend, matcher)
        callback = Recorder()

        router.arm(AnalysisMode.TEXT, callback)
        assert router.armed_mode is AnalysisMode.TEXT

        task = router.on_frame(frame)
        assert task is not None
        assert router.armed_mode is AnalysisMode.NONE
        await task

        assert router.on_frame(frame) is None
        assert callback.results == ["EXIT Platform 4"]
        assert backend.calls == ["text"]

    @pytest.mark.asyncio
    async def test_frames_during_classification_dropped(self, matcher, frame):
        """Test frames arriving mid-classification are not queued."""
        backend = MockVisionBackend(text_lines=["EXIT"], latency=0.05)
        router = make_router(backend, matcher)
        callback = Recorder()

        router.arm(AnalysisMode.TEXT, callback)
        task = router.on_frame(frame)
        assert router.on_frame(frame) is None
        assert router.on_frame(frame) is None
        await task

        assert callback.results == ["EXIT"]
        assert backend.calls == ["text"]

    @pytest.mark.asyncio
    async def test_rearm_replaces_pending_request(self, matcher, frame):
        """Test the last arming before a frame wins."""
        backend = MockVisionBackend(
            text_lines=["EXIT"], scene=[Classification("beach", 0.9)]
        )
        router = make_router(backend, matcher)
        first = Recorder()
        second = Recorder()

        router.arm(AnalysisMode.TEXT, first)
        router.arm(AnalysisMode.SCENE, second)
        await router.on_frame(frame)

        assert first.results == []
        assert second.results == ["This appears to be beach."]
        assert backend.calls == ["scene"]

    @pytest.mark.asyncio
    async def test_arm_during_classification(self, matcher, frame):
        """Test re-arming mid-classification keeps results with their callers."""
        backend = MockVisionBackend(text_lines=["EXIT"], latency=0.05)
        router = make_router(backend, matcher)
        first = Recorder()
        second = Recorder()

        router.arm(AnalysisMode.TEXT, first)
        task = router.on_frame(frame)
        router.arm(AnalysisMode.SCENE, second)
        await task

        assert first.results == ["EXIT"]
        assert second.results == []
        assert router.armed_mode is AnalysisMode.SCENE

    @pytest.mark.asyncio
    async def test_arm_none_disarms(self, matcher, frame):
        router = make_router(MockVisionBackend(), matcher)
        callback = Recorder()

        router.arm(AnalysisMode.TEXT, callback)
        router.arm(AnalysisMode.NONE, callback)

        assert router.armed_mode is AnalysisMode.NONE
        assert router.on_frame(frame) is None

    @pytest.mark.asyncio
    async def test_disarm(self, matcher, frame):
        router = make_router(MockVisionBackend(), matcher)
        router.arm(AnalysisMode.SCENE, Recorder())
        router.disarm()

        assert router.on_frame(frame) is None

    @pytest.mark.asyncio
    async def test_object_model_not_loaded(self, matcher, frame):
        """Test object analysis without a model skips the classifier."""
        backend = MockVisionBackend(
            objects=[Classification("mug", 0.9)], model_loaded=False
        )
        router = make_router(backend, matcher)
        callback = Recorder()

        router.arm(AnalysisMode.OBJECT, callback)
        await router.on_frame(frame)

        assert callback.results == [MODEL_NOT_LOADED]
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_object_result(self, matcher, frame):
        backend = MockVisionBackend(objects=[Classification("umbrella", 0.7)])
        router = make_router(backend, matcher)
        callback = Recorder()

        router.arm(AnalysisMode.OBJECT, callback)
        await router.on_frame(frame)

        assert callback.results == ["This is an umbrella."]

    @pytest.mark.asyncio
    async def test_classifier_error_reports_empty_result(self, matcher, frame):
        """Test a failing classifier still answers the request."""

        class FailingBackend(MockVisionBackend):
            async def recognize_text(self, frame):
                raise RuntimeError("engine crashed")

        router = make_router(FailingBackend(), matcher)
        callback = Recorder()

        router.arm(AnalysisMode.TEXT, callback)
        await router.on_frame(frame)

        assert callback.results == [NO_TEXT]
        assert router.armed_mode is AnalysisMode.NONE

    @pytest.mark.asyncio
    async def test_no_face(self, matcher, frame):
        router = make_router(MockVisionBackend(landmarks=None), matcher)
        callback = Recorder()

        router.arm(AnalysisMode.FACE, callback)
        await router.on_frame(frame)

        assert callback.results == [NO_FACE]

    @pytest.mark.asyncio
    async def test_known_face(self, matcher, frame, signature):
        """Test a gallery match names the person."""
        gallery = Gallery({"Alex": signature})
        router = make_router(MockVisionBackend(landmarks=signature), matcher, gallery)
        callback = Recorder()

        router.arm(AnalysisMode.FACE, callback)
        await router.on_frame(frame)

        assert callback.results == ["Alex is in front of you."]

    @pytest.mark.asyncio
    async def test_unknown_face_after_result(self, matcher, frame, signature):
        """Test an unmatched face is reported, then handed on for enrollment."""
        order = []
        callback = Recorder()

        async def deliver(result):
            order.append("result")
            await callback(result)

        async def on_unknown_face(points):
            order.append("unknown")
            assert points == signature

        router = make_router(
            MockVisionBackend(landmarks=signature),
            matcher,
            on_unknown_face=on_unknown_face,
        )

        router.arm(AnalysisMode.FACE, deliver)
        await router.on_frame(frame)

        assert callback.results == [UNKNOWN_PERSON]
        assert order == ["result", "unknown"]

    @pytest.mark.asyncio
    async def test_unknown_face_handler_error_logged(self, matcher, frame, signature):
        """Test a failing enrollment hook does not fail the analysis task."""
        callback = Recorder()

        async def on_unknown_face(points):
            raise RuntimeError("enrollment broke")

        router = make_router(
            MockVisionBackend(landmarks=signature),
            matcher,
            on_unknown_face=on_unknown_face,
        )

        router.arm(AnalysisMode.FACE, callback)
        task = router.on_frame(frame)
        await task

        assert task.exception() is None
        assert callback.results == [UNKNOWN_PERSON]

    @pytest.mark.asyncio
    async def test_drain(self, matcher, frame):
        backend = MockVisionBackend(text_lines=["EXIT"], latency=0.02)
        router = make_router(backend, matcher)
        callback = Recorder()

        router.arm(AnalysisMode.TEXT, callback)
        router.on_frame(frame)
        await router.drain()

        assert callback.results == ["EXIT"]
