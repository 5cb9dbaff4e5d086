"""Archive cache APIs."""

from .keys import ARCHIVE_SUFFIX, CacheKey
from .store import ArtifactCache

__all__ = ["ARCHIVE_SUFFIX", "ArtifactCache", "CacheKey"]
