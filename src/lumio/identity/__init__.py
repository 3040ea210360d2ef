"""Face identity matching and the known-face gallery."""

from lumio.identity.gallery import Gallery, GalleryRepository
from lumio.identity.matcher import IdentityMatcher, signature_drift

__all__ = ["Gallery", "GalleryRepository", "IdentityMatcher", "signature_drift"]
