"""Frame capture and single-shot frame analysis."""

from lumio.types import AnalysisMode, Classification, Frame
from lumio.vision.backends import LocalVisionBackend, MockVisionBackend, VisionBackend, create_backend
from lumio.vision.camera import FrameSource, MockFrameSource, OpenCVFrameSource, create_frame_source
from lumio.vision.router import AnalysisRouter

__all__ = [
    "AnalysisMode",
    "AnalysisRouter",
    "Classification",
    "Frame",
    "FrameSource",
    "LocalVisionBackend",
    "MockFrameSource",
    "MockVisionBackend",
    "OpenCVFrameSource",
    "VisionBackend",
    "create_backend",
    "create_frame_source",
]
