"""Package source interface and shared index parsing."""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Dict, List, Mapping, NamedTuple, Protocol, Union

from common.errors import ConstraintParseError, FetchError
from versioning.models import SemanticVersion, parse_version

logger = logging.getLogger(__name__)


class PublishedVersion(NamedTuple):
    """One published version of a package and its metadata."""
    version: SemanticVersion
    metadata: Dict[str, Any]


class PackageSource(Protocol):
    """Metadata lookup and content fetch for packages.

    Implementations raise ``PackageNotFoundError`` for unknown packages or
    versions and ``TransientFetchError`` for failures worth retrying.
    """

    def list_versions(self, name: str) -> List[PublishedVersion]:
        ...

    def fetch(self, name: str, version: SemanticVersion) -> bytes:
        ...


def quote_name(name: str) -> str:
    """Package name as a single URL path segment."""
    return urllib.parse.quote(name, safe="")


def parse_index(name: str, payload: Any) -> List[PublishedVersion]:
    """Read an index document ``{"versions": {"1.2.0": {...}}}``.

    Versions that do not parse are skipped; a document without a
    ``versions`` mapping is an error.
    """
    if not isinstance(payload, Mapping) or not isinstance(payload.get("versions"), Mapping):
        raise FetchError(name, reason="malformed index: missing 'versions' mapping")
    published = []
    for text, metadata in payload["versions"].items():
        try:
            version = parse_version(text)
        except ConstraintParseError:
            logger.debug("Skipping unparseable version %r of %s", text, name)
            continue
        published.append(PublishedVersion(version, dict(metadata or {})))
    published.sort(key=lambda p: p.version)
    return published


def as_version(value: Union[str, SemanticVersion]) -> SemanticVersion:
    return value if isinstance(value, SemanticVersion) else parse_version(value)
