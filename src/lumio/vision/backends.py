"""Vision backends: text, scene, object and face-landmark extraction."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Sequence

import numpy as np
from PIL import Image

from lumio.common.logging import get_logger
from lumio.config import Config
from lumio.types import Classification, Frame, Point


class VisionBackend:
    """Abstract vision backend.

    One capability per analysis mode; the router only ever talks to this
    interface so it can run against fakes.
    """

    async def setup(self) -> None:
        """Setup vision backend."""
        pass

    async def teardown(self) -> None:
        """Teardown vision backend."""
        pass

    @property
    def object_model_loaded(self) -> bool:
        """Whether the object classifier model is available."""
        raise NotImplementedError

    async def recognize_text(self, frame: Frame) -> list[str]:
        """Recognize text lines, top candidate per line."""
        raise NotImplementedError

    async def classify_scene(self, frame: Frame) -> list[Classification]:
        """Classify the scene."""
        raise NotImplementedError

    async def classify_object(self, frame: Frame) -> list[Classification]:
        """Classify the dominant object."""
        raise NotImplementedError

    async def extract_face_landmarks(self, frame: Frame) -> list[Point] | None:
        """Extract normalized landmarks of the first visible face."""
        raise NotImplementedError

    def get_status(self) -> dict:
        """Get backend status."""
        raise NotImplementedError


class MockVisionBackend(VisionBackend):
    """Mock vision backend with scriptable results."""

    def __init__(
        self,
        text_lines: list[str] | None = None,
        scene: list[Classification] | None = None,
        objects: list[Classification] | None = None,
        landmarks: Sequence[Point] | None = None,
        model_loaded: bool = True,
        latency: float = 0.0,
    ) -> None:
        self.text_lines = text_lines if text_lines is not None else []
        self.scene = scene if scene is not None else []
        self.objects = objects if objects is not None else []
        self.landmarks = list(landmarks) if landmarks is not None else None
        self.model_loaded = model_loaded
        self.latency = latency
        self.calls: list[str] = []

    @property
    def object_model_loaded(self) -> bool:
        return self.model_loaded

    async def _simulate(self, name: str) -> None:
        self.calls.append(name)
        if self.latency:
            await asyncio.sleep(self.latency)

    async def recognize_text(self, frame: Frame) -> list[str]:
        await self._simulate("text")
        return list(self.text_lines)

    async def classify_scene(self, frame: Frame) -> list[Classification]:
        await self._simulate("scene")
        return list(self.scene)

    async def classify_object(self, frame: Frame) -> list[Classification]:
        await self._simulate("object")
        return list(self.objects)

    async def extract_face_landmarks(self, frame: Frame) -> list[Point] | None:
        await self._simulate("face")
        return list(self.landmarks) if self.landmarks is not None else None

    def get_status(self) -> dict:
        return {
            "available": True,
            "backend": "mock",
            "object_model_loaded": self.model_loaded,
            "calls": len(self.calls),
        }


def _load_labels(path: str | None) -> list[str]:
    if not path:
        return []
    return [line.strip() for line in Path(path).read_text().splitlines() if line.strip()]


_ROTATIONS = {"up": 0, "left": 1, "down": 2, "right": -1}


def frame_to_rgb(frame: Frame) -> np.ndarray:
    """Convert a frame to an upright RGB array."""
    image = frame.image
    if isinstance(image, Image.Image):
        array = np.asarray(image.convert("RGB"))
    else:
        array = np.asarray(image)

    k = _ROTATIONS.get(frame.orientation, 0)
    if k:
        array = np.ascontiguousarray(np.rot90(array, k=k))
    return array


class LocalVisionBackend(VisionBackend):
    """On-device backend.

    - Text: Tesseract via pytesseract
    - Scene/object: image classifiers loaded with OpenCV DNN
    - Face: MediaPipe FaceMesh landmarks

    Each capability degrades independently when its library or model file
    is missing.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.logger = get_logger("local_vision_backend")
        self._tesseract: Any = None
        self._object_net: Any = None
        self._object_labels: list[str] = []
        self._scene_net: Any = None
        self._scene_labels: list[str] = []
        self._face_mesh: Any = None
        self._frame_count = 0

    @property
    def object_model_loaded(self) -> bool:
        return self._object_net is not None

    async def setup(self) -> None:
        """Load whichever engines are installed."""
        analysis = self.config.analysis

        try:
            import pytesseract

            self._tesseract = pytesseract
            self.logger.info("tesseract_available")
        except ImportError:
            self.logger.warning("pytesseract_not_available")

        self._object_net, self._object_labels = self._load_classifier(
            "object", analysis.object_model_path, analysis.object_labels_path
        )
        self._scene_net, self._scene_labels = self._load_classifier(
            "scene", analysis.scene_model_path, analysis.scene_labels_path
        )

        try:
            import mediapipe as mp

            self._face_mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=True,
                max_num_faces=1,
                refine_landmarks=False,
            )
            self.logger.info("face_mesh_initialized")
        except ImportError:
            self.logger.warning("mediapipe_not_available")
        except Exception as e:
            self.logger.exception("face_mesh_setup_failed", error=str(e))

    def _load_classifier(
        self, kind: str, model_path: str | None, labels_path: str | None
    ) -> tuple[Any, list[str]]:
        if not model_path:
            self.logger.info("classifier_not_configured", kind=kind)
            return None, []

        try:
            import cv2

            net = cv2.dnn.readNet(model_path)
            labels = _load_labels(labels_path)
            self.logger.info("classifier_loaded", kind=kind, model=model_path, labels=len(labels))
            return net, labels
        except Exception as e:
            self.logger.exception("classifier_load_failed", kind=kind, model=model_path, error=str(e))
            return None, []

    async def teardown(self) -> None:
        if self._face_mesh is not None:
            self._face_mesh.close()
            self._face_mesh = None

    async def recognize_text(self, frame: Frame) -> list[str]:
        if self._tesseract is None:
            return []
        self._frame_count += 1
        rgb = frame_to_rgb(frame)
        return await asyncio.to_thread(self._read_lines, rgb)

    def _read_lines(self, rgb: np.ndarray) -> list[str]:
        data = self._tesseract.image_to_data(
            rgb,
            lang=self.config.analysis.tesseract_lang,
            output_type=self._tesseract.Output.DICT,
        )

        lines: dict[tuple[int, int, int], list[str]] = {}
        for i, word in enumerate(data["text"]):
            word = word.strip()
            if not word or float(data["conf"][i]) < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word)

        return [" ".join(words) for words in lines.values()]

    async def classify_scene(self, frame: Frame) -> list[Classification]:
        if self._scene_net is None:
            return []
        self._frame_count += 1
        rgb = frame_to_rgb(frame)
        return await asyncio.to_thread(self._classify, self._scene_net, self._scene_labels, rgb)

    async def classify_object(self, frame: Frame) -> list[Classification]:
        if self._object_net is None:
            raise RuntimeError("Object model not loaded")
        self._frame_count += 1
        rgb = frame_to_rgb(frame)
        return await asyncio.to_thread(self._classify, self._object_net, self._object_labels, rgb)

    def _classify(self, net: Any, labels: list[str], rgb: np.ndarray, top_k: int = 5) -> list[Classification]:
        import cv2

        size = self.config.analysis.input_size
        # Center crop so objects are not stretched
        blob = cv2.dnn.blobFromImage(
            rgb,
            scalefactor=1.0 / 255.0,
            size=(size, size),
            swapRB=False,
            crop=True,
        )
        net.setInput(blob)
        scores = np.asarray(net.forward(), dtype=np.float64).flatten()

        if scores.min() < 0 or not np.isclose(scores.sum(), 1.0, atol=1e-3):
            exp = np.exp(scores - scores.max())
            scores = exp / exp.sum()

        order = np.argsort(scores)[::-1][:top_k]
        return [
            Classification(
                label=labels[i] if i < len(labels) else str(i),
                confidence=float(scores[i]),
            )
            for i in order
        ]

    async def extract_face_landmarks(self, frame: Frame) -> list[Point] | None:
        if self._face_mesh is None:
            return None
        self._frame_count += 1
        rgb = frame_to_rgb(frame)
        results = await asyncio.to_thread(self._face_mesh.process, rgb)

        if not results.multi_face_landmarks:
            return None
        face = results.multi_face_landmarks[0]
        return [(float(lm.x), float(lm.y)) for lm in face.landmark]

    def get_status(self) -> dict:
        return {
            "available": True,
            "backend": "local",
            "text_available": self._tesseract is not None,
            "scene_model_loaded": self._scene_net is not None,
            "object_model_loaded": self.object_model_loaded,
            "face_landmarks_available": self._face_mesh is not None,
            "frames_processed": self._frame_count,
        }


def _demo_landmarks(count: int = 76) -> list[Point]:
    """Deterministic oval of landmark points for mock runs."""
    angles = np.linspace(0.0, 2.0 * np.pi, count, endpoint=False)
    return [(0.5 + 0.2 * float(np.cos(a)), 0.5 + 0.3 * float(np.sin(a))) for a in angles]


def create_backend(config: Config, mock_mode: bool = False) -> VisionBackend:
    """Create the vision backend for the configured mode."""
    if mock_mode or config.mock_mode:
        return MockVisionBackend(
            text_lines=["EXIT", "Platform 4"],
            scene=[Classification("kitchen", 0.82), Classification("indoor", 0.71)],
            objects=[Classification("coffee mug, mug", 0.64)],
            landmarks=_demo_landmarks(),
            latency=0.05,
        )
    return LocalVisionBackend(config)
