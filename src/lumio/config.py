"""Configuration management for Lumio."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceConfig(BaseModel):
    """Device configuration."""

    name: str = "lumio"
    mode: Literal["production", "development"] = "development"
    log_level: str = "INFO"


class CameraConfig(BaseModel):
    """Camera configuration."""

    index: int = 0
    resolution: list[int] = [1280, 720]
    fps: int = 30
    orientation: Literal["up", "down", "left", "right"] = "right"


class AnalysisConfig(BaseModel):
    """Frame analysis configuration."""

    scene_min_confidence: float = 0.6
    object_min_confidence: float = 0.20
    object_model_path: str | None = None
    object_labels_path: str | None = None
    scene_model_path: str | None = None
    scene_labels_path: str | None = None
    input_size: int = 224
    tesseract_lang: str = "eng"


class IdentityConfig(BaseModel):
    """Face identity configuration."""

    # Mean per-point drift, tuned for normalized landmark coordinates
    match_threshold: float = 0.06
    gallery_path: str = str(Path.home() / ".local" / "share" / "lumio" / "faces.json")
    storage_key: str = "LumioSavedFaces"


class EnrollmentConfig(BaseModel):
    """Enrollment flow configuration."""

    listen_delay_seconds: float = 1.5
    listen_timeout_seconds: float = 4.0
    final_transcript_timeout_seconds: float = 1.0


class SpeechConfig(BaseModel):
    """Speech configuration."""

    rate: float = Field(default=0.5, ge=0.1, le=1.0)
    voice: str = "en-US"
    stt_model: str = "tiny"
    stt_language: str = "en"
    sample_rate: int = 16000
    chunk_size_ms: int = 250


class Config(BaseSettings):
    """Main configuration for Lumio."""

    model_config = SettingsConfigDict(
        env_prefix="LUMIO_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    enrollment: EnrollmentConfig = Field(default_factory=EnrollmentConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)

    # Mock backends for development
    mock_mode: bool = False

    @classmethod
    def from_yaml(cls, path: Path | str) -> Config:
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)


def load_config(
    config_path: Path | str | None = None,
    env_override: bool = True,
) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Path to config file. If None, searches standard locations.
        env_override: Whether to allow environment variables to override config.

    Returns:
        Loaded configuration.
    """
    search_paths = [
        Path("/etc/lumio/config.yaml"),
        Path.home() / ".config" / "lumio" / "config.yaml",
        Path("config.yaml"),
        Path("configs/lumio.yaml"),
    ]

    if config_path:
        search_paths.insert(0, Path(config_path))

    config_file: Path | None = None
    for path in search_paths:
        if path.exists():
            config_file = path
            break

    if config_file:
        config = Config.from_yaml(config_file)
    else:
        config = Config()

    if env_override:
        gallery_path = os.environ.get("LUMIO_GALLERY_PATH")
        if gallery_path:
            config.identity.gallery_path = gallery_path

        if os.environ.get("LUMIO_MOCK_MODE", "").lower() in ("1", "true", "yes"):
            config.mock_mode = True

    return config
