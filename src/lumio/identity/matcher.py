"""Nearest-neighbour face identity matching over landmark signatures."""

from __future__ import annotations

import math
from typing import Iterable

import numpy as np

from lumio.common.logging import get_logger
from lumio.types import Signature

DEFAULT_MATCH_THRESHOLD = 0.06


def signature_drift(a: Signature, b: Signature) -> float:
    """Mean per-point Euclidean distance between two signatures.

    Signatures of different length (or empty ones) are not comparable and
    yield ``math.inf``.
    """
    if len(a) != len(b) or len(a) == 0:
        return math.inf

    pa = np.asarray(a, dtype=np.float64).reshape(-1, 2)
    pb = np.asarray(b, dtype=np.float64).reshape(-1, 2)
    return float(np.linalg.norm(pa - pb, axis=1).mean())


class IdentityMatcher:
    """Match a signature against known identities.

    A single global threshold applies to every identity; there is no
    per-identity calibration.
    """

    def __init__(self, threshold: float = DEFAULT_MATCH_THRESHOLD) -> None:
        self.threshold = threshold
        self.logger = get_logger("identity_matcher")

    def best_match(
        self,
        signature: Signature,
        gallery: Iterable[tuple[str, Signature]],
    ) -> tuple[str | None, float]:
        """Find the closest identity.

        Args:
            signature: Signature of the face in front of the camera.
            gallery: (name, signature) pairs to scan.

        Returns:
            (name, drift) of the closest entry when its drift is strictly
            below the threshold, otherwise (None, minimum drift seen).
        """
        best_name: str | None = None
        best_drift = math.inf

        for name, known in gallery:
            drift = signature_drift(signature, known)
            self.logger.debug("signature_drift", name=name, drift=drift)
            if drift < best_drift:
                best_drift = drift
                best_name = name

        if best_name is not None and best_drift < self.threshold:
            return best_name, best_drift
        return None, best_drift

    def match(
        self,
        signature: Signature,
        gallery: Iterable[tuple[str, Signature]],
    ) -> str | None:
        """Return the matching name, or None for an unknown face."""
        name, _ = self.best_match(signature, gallery)
        return name
