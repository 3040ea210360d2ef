"""Frame sources that feed the analysis router."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Callable

from PIL import Image

from lumio.common.logging import get_logger
from lumio.config import Config
from lumio.types import Frame

FrameHandler = Callable[[Frame], Any]


class FrameSource:
    """Abstract continuous frame producer.

    Consumers register a handler; the source holds only that callable, not
    the consumer. Handlers are always invoked on the event loop.
    """

    def __init__(self) -> None:
        self._handler: FrameHandler | None = None
        self._frame_count = 0

    def set_frame_handler(self, handler: FrameHandler | None) -> None:
        """Register (or clear, with None) the per-frame handler."""
        self._handler = handler

    def _deliver(self, frame: Frame) -> None:
        self._frame_count += 1
        if self._handler is not None:
            self._handler(frame)

    async def start(self) -> None:
        """Start producing frames."""
        raise NotImplementedError

    async def stop(self) -> None:
        """Stop producing frames."""
        raise NotImplementedError

    def get_status(self) -> dict:
        """Get frame source status."""
        raise NotImplementedError


class MockFrameSource(FrameSource):
    """Synthetic frames generated on an asyncio task."""

    def __init__(self, fps: int = 10, orientation: str = "right") -> None:
        super().__init__()
        self.fps = fps
        self.orientation = orientation
        self._task: asyncio.Task | None = None

    def push(self, frame: Frame | None = None) -> None:
        """Deliver one frame immediately."""
        if frame is None:
            frame = Frame(
                image=Image.new("RGB", (640, 480), color=(73, 109, 137)),
                orientation=self.orientation,
                metadata={"mock": True},
            )
        self._deliver(frame)

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="mock-frames")

    async def _run(self) -> None:
        interval = 1.0 / self.fps
        while True:
            self.push()
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def get_status(self) -> dict:
        return {
            "available": True,
            "backend": "mock",
            "running": self._task is not None,
            "frames_delivered": self._frame_count,
        }


class OpenCVFrameSource(FrameSource):
    """Camera capture with OpenCV on a dedicated worker thread."""

    def __init__(self, config: Config) -> None:
        super().__init__()
        self.config = config
        self.logger = get_logger("opencv_frame_source")
        self._capture: Any = None
        self._thread: threading.Thread | None = None
        self._running = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    async def start(self) -> None:
        import cv2

        camera = self.config.camera
        self._capture = cv2.VideoCapture(camera.index)
        if not self._capture.isOpened():
            self._capture = None
            raise RuntimeError(f"Camera {camera.index} could not be opened")

        width, height = camera.resolution
        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        self._capture.set(cv2.CAP_PROP_FPS, camera.fps)

        self._loop = asyncio.get_running_loop()
        self._running.set()
        self._thread = threading.Thread(target=self._capture_loop, name="camera", daemon=True)
        self._thread.start()
        self.logger.info("camera_started", index=camera.index, resolution=camera.resolution)

    def _capture_loop(self) -> None:
        import cv2

        interval = 1.0 / max(self.config.camera.fps, 1)
        while self._running.is_set():
            ok, bgr = self._capture.read()
            if not ok:
                self.logger.warning("camera_read_failed")
                time.sleep(interval)
                continue

            frame = Frame(
                image=cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB),
                orientation=self.config.camera.orientation,
            )
            try:
                self._loop.call_soon_threadsafe(self._deliver, frame)
            except RuntimeError:
                # Event loop closed
                break

    async def stop(self) -> None:
        self._running.clear()
        if self._thread:
            await asyncio.to_thread(self._thread.join, 2.0)
            self._thread = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        self.logger.info("camera_stopped")

    def get_status(self) -> dict:
        return {
            "available": self._capture is not None,
            "backend": "opencv",
            "running": self._running.is_set(),
            "frames_delivered": self._frame_count,
        }


def create_frame_source(config: Config, mock_mode: bool = False) -> FrameSource:
    """Create the frame source for the configured mode."""
    if mock_mode or config.mock_mode:
        return MockFrameSource(fps=config.camera.fps, orientation=config.camera.orientation)
    return OpenCVFrameSource(config)
