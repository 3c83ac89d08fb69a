"""Per-run memo of package metadata lookups."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


class MetadataCache:
    """Memoizes ``source.list_versions`` for the lifetime of one resolution.

    The cache is passed explicitly to the resolver; nothing is shared
    between runs unless the caller reuses the same instance.
    """

    def __init__(self, source: Any):
        """Initialize the cache.

        Args:
            source: Object exposing ``list_versions(name)``.
        """
        self._source = source
        self._entries: Dict[str, List[Any]] = {}
        self._hits = 0
        self._misses = 0

    def list_versions(self, name: str) -> List[Any]:
        """Published versions of ``name`` sorted ascending."""
        entry = self._entries.get(name)
        if entry is not None:
            self._hits += 1
            return entry

        self._misses += 1
        published = sorted(self._source.list_versions(name), key=lambda p: p.version)
        self._entries[name] = published
        if is_debug_enabled(logger):
            logger.debug(
                "Metadata fetched",
                extra=extra_context(
                    event="metadata_lookup",
                    component="resolver_cache",
                    package=name,
                    count=len(published),
                ),
            )
        return published

    def metadata_for(self, name: str, version: Any) -> Optional[Any]:
        """Metadata published for one version, or None when not listed."""
        for published in self.list_versions(name):
            if published.version == version:
                return published.metadata
        return None

    def stats(self) -> Dict[str, int]:
        """Get cache statistics."""
        return {"entries": len(self._entries), "hits": self._hits, "misses": self._misses}
