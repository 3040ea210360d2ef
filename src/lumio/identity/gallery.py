"""Known-face gallery and its on-disk repository."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Iterator

from pydantic import TypeAdapter, ValidationError

from lumio.common.logging import get_logger
from lumio.types import Point, Signature

_FACES_ADAPTER = TypeAdapter(dict[str, list[tuple[float, float]]])


class Gallery:
    """Name to landmark-signature mapping.

    Plain in-memory state; persisting it is the repository's job and is
    invoked explicitly by whoever owns the gallery.
    """

    def __init__(self, faces: dict[str, Signature] | None = None) -> None:
        self._faces: dict[str, list[Point]] = {}
        for name, signature in (faces or {}).items():
            self.enroll(name, signature)

    def enroll(self, name: str, signature: Signature) -> None:
        """Add or overwrite an identity (last write wins)."""
        name = name.strip()
        if not name:
            raise ValueError("Identity name must not be empty")
        self._faces[name] = [(float(x), float(y)) for x, y in signature]

    def get(self, name: str) -> list[Point] | None:
        return self._faces.get(name)

    def names(self) -> list[str]:
        return list(self._faces)

    def items(self) -> list[tuple[str, list[Point]]]:
        return list(self._faces.items())

    def to_dict(self) -> dict[str, list[Point]]:
        return {name: list(points) for name, points in self._faces.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._faces

    def __iter__(self) -> Iterator[str]:
        return iter(self._faces)

    def __len__(self) -> int:
        return len(self._faces)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Gallery):
            return NotImplemented
        return self._faces == other._faces

    def __repr__(self) -> str:
        return f"Gallery(names={self.names()!r})"


class GalleryRepository:
    """JSON file storage for the gallery.

    The file holds ``{storage_key: {name: [[x, y], ...]}}``. A missing file
    is an empty gallery; unreadable content is logged and also treated as
    empty so the assistant keeps running.
    """

    def __init__(self, path: Path | str, storage_key: str = "LumioSavedFaces") -> None:
        self.path = Path(path)
        self.storage_key = storage_key
        self.logger = get_logger("gallery_repository", path=str(self.path))

    def load(self) -> Gallery:
        """Load the gallery from disk."""
        if not self.path.exists():
            self.logger.info("gallery_not_found")
            return Gallery()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            faces = _FACES_ADAPTER.validate_python(raw.get(self.storage_key, {}))
            gallery = Gallery(faces)
        except (OSError, ValueError, ValidationError, AttributeError) as e:
            self.logger.exception("gallery_load_failed", error=str(e))
            return Gallery()

        self.logger.info("gallery_loaded", faces=len(gallery))
        return gallery

    def save(self, gallery: Gallery) -> bool:
        """Write the full gallery to disk.

        Returns:
            True if the gallery was written.
        """
        payload = {
            self.storage_key: {
                name: [[x, y] for x, y in points] for name, points in gallery.items()
            }
        }

        tmp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=".faces-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            self.logger.exception("gallery_save_failed", error=str(e))
            return False
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

        self.logger.info("gallery_saved", faces=len(gallery))
        return True
