"""Lumio - camera-driven accessibility assistant."""

__version__ = "0.1.0"
__author__ = "Lumio Team"

from lumio.config import Config, load_config

__all__ = ["Config", "load_config", "__version__"]
