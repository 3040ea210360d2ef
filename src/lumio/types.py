"""Shared types for frames, classifier results and face signatures."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

Point = tuple[float, float]
Signature = Sequence[Point]


class AnalysisMode(Enum):
    """Single-shot analysis request armed on the router."""

    NONE = "none"
    TEXT = "text"
    SCENE = "scene"
    OBJECT = "object"
    FACE = "face"


@dataclass
class Frame:
    """Captured camera frame.

    ``image`` is whatever the frame source produced: a PIL image for the
    mock source, an RGB numpy array for OpenCV capture.
    """

    image: Any
    orientation: str = "right"
    frame_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)
    metadata: dict = field(default_factory=dict)


@dataclass
class Classification:
    """Labelled classifier score."""

    label: str
    confidence: float
