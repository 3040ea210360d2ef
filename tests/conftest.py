"""Pytest configuration and fixtures for Lumio tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from lumio.config import Config
from lumio.identity.gallery import Gallery
from lumio.identity.matcher import IdentityMatcher
from lumio.speech.capture import MockSpeechCapture
from lumio.speech.narrator import MockNarrator
from lumio.types import Frame, Point
from lumio.vision.backends import MockVisionBackend
from lumio.vision.camera import MockFrameSource


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command line options."""
    parser.addoption(
        "--hil",
        action="store_true",
        default=False,
        help="Run hardware-in-the-loop tests (requires camera and microphone)",
    )
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure test markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "hil: Hardware-in-the-loop tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Modify test collection based on options."""
    # Skip HIL tests unless --hil flag is set
    if not config.getoption("--hil"):
        skip_hil = pytest.mark.skip(reason="Need --hil option to run")
        for item in items:
            if "hil" in item.keywords:
                item.add_marker(skip_hil)

    # Skip slow tests unless --slow flag is set
    if not config.getoption("--slow"):
        skip_slow = pytest.mark.skip(reason="Need --slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


@pytest.fixture
def gallery_path(tmp_path: Path) -> Path:
    """Gallery file inside the test's temp directory."""
    return tmp_path / "faces.json"


@pytest.fixture
def config(gallery_path: Path) -> Config:
    """Get test configuration."""
    cfg = Config()
    cfg.mock_mode = True
    cfg.device.mode = "development"
    cfg.device.log_level = "DEBUG"
    cfg.identity.gallery_path = str(gallery_path)
    cfg.enrollment.listen_delay_seconds = 0.0
    cfg.enrollment.listen_timeout_seconds = 0.2
    return cfg


def make_signature(count: int = 10, offset: float = 0.0) -> list[Point]:
    """Landmark signature on a diagonal, shifted by ``offset``."""
    return [(i / count + offset, i / count + offset) for i in range(count)]


@pytest.fixture
def signature() -> list[Point]:
    return make_signature()


@pytest.fixture
def frame() -> Frame:
    """Create a mock frame."""
    return Frame(image=Image.new("RGB", (640, 480), color=(73, 109, 137)), orientation="up")


@pytest.fixture
def backend() -> MockVisionBackend:
    return MockVisionBackend()


@pytest.fixture
def narrator() -> MockNarrator:
    return MockNarrator()


@pytest.fixture
def capture() -> MockSpeechCapture:
    return MockSpeechCapture()


@pytest.fixture
def frame_source() -> MockFrameSource:
    return MockFrameSource(orientation="up")


@pytest.fixture
def matcher() -> IdentityMatcher:
    return IdentityMatcher(threshold=0.06)


@pytest.fixture
def gallery() -> Gallery:
    return Gallery()
