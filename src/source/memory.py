"""In-process package source backed by dictionaries or a local mirror."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from common.errors import FetchError, PackageNotFoundError
from versioning.models import SemanticVersion

from .base import PublishedVersion, as_version, parse_index, quote_name

logger = logging.getLogger(__name__)

ARCHIVE_FILE = "archive"
INDEX_FILE = "index.json"


class InMemoryPackageSource:
    """Package index held in memory.

    Used for offline mirrors and tests. Every ``fetch`` is appended to
    ``fetch_log`` as ``(name, version_text)``.
    """

    def __init__(self) -> None:
        self._packages: Dict[str, Dict[SemanticVersion, Tuple[Dict[str, Any], Optional[bytes]]]] = {}
        self.fetch_log: List[Tuple[str, str]] = []

    def add(
        self,
        name: str,
        version: Union[str, SemanticVersion],
        dependencies: Optional[Mapping[str, str]] = None,
        content: Optional[bytes] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> PublishedVersion:
        """Publish one version; content defaults to a small Lua module."""
        parsed = as_version(version)
        if content is None:
            content = f"-- {name} {parsed}\nreturn {{ version = \"{parsed}\" }}\n".encode("utf-8")
        return self._publish(name, parsed, metadata, content, dependencies)

    def _publish(
        self,
        name: str,
        version: SemanticVersion,
        metadata: Optional[Mapping[str, Any]],
        content: Optional[bytes],
        dependencies: Optional[Mapping[str, str]] = None,
    ) -> PublishedVersion:
        meta = dict(metadata or {})
        meta["dependencies"] = dict(dependencies or meta.get("dependencies") or {})
        self._packages.setdefault(name, {})[version] = (meta, content)
        return PublishedVersion(version, meta)

    def remove(self, name: str, version: Union[str, SemanticVersion, None] = None) -> None:
        """Unpublish one version, or the whole package."""
        if version is None:
            self._packages.pop(name, None)
        else:
            self._packages.get(name, {}).pop(as_version(version), None)

    def list_versions(self, name: str) -> List[PublishedVersion]:
        versions = self._packages.get(name)
        if not versions:
            raise PackageNotFoundError(name, reason="not in index")
        return [PublishedVersion(v, dict(versions[v][0])) for v in sorted(versions)]

    def fetch(self, name: str, version: Union[str, SemanticVersion]) -> bytes:
        parsed = as_version(version)
        self.fetch_log.append((name, str(parsed)))
        entry = self._packages.get(name, {}).get(parsed)
        if entry is None:
            raise PackageNotFoundError(name, str(parsed), "version not published")
        if entry[1] is None:
            raise PackageNotFoundError(name, str(parsed), "no archive in mirror")
        return entry[1]

    def names(self) -> List[str]:
        return sorted(self._packages)

    @classmethod
    def from_directory(cls, root: str) -> "InMemoryPackageSource":
        """Load a mirror laid out like the HTTP registry.

        ``<root>/<name>/index.json`` lists versions and their metadata and
        ``<root>/<name>/<version>/archive`` holds the content, when present.
        """
        source = cls()
        if not os.path.isdir(root):
            raise FetchError(root, reason="mirror directory does not exist")
        for entry in sorted(os.listdir(root)):
            index_path = os.path.join(root, entry, INDEX_FILE)
            if not os.path.isfile(index_path):
                continue
            with open(index_path, "r", encoding="utf-8") as fh:
                try:
                    payload = json.load(fh)
                except json.JSONDecodeError as exc:
                    raise FetchError(entry, reason=f"malformed index: {exc}") from exc
            name = payload.get("name", entry) if isinstance(payload, dict) else entry
            for published in parse_index(name, payload):
                archive = os.path.join(root, entry, str(published.version), ARCHIVE_FILE)
                content = None
                if os.path.isfile(archive):
                    with open(archive, "rb") as fh:
                        content = fh.read()
                else:
                    logger.warning("Mirror has no archive for %s@%s", name, published.version)
                # listed without content: fetch reports it as not found
                source._publish(name, published.version, published.metadata, content)
        logger.debug("Loaded %d package(s) from mirror %s", len(source.names()), root)
        return source

    def write_directory(self, root: str) -> None:
        """Write this index to ``root`` in the layout ``from_directory`` reads."""
        for name, versions in self._packages.items():
            package_dir = os.path.join(root, quote_name(name))
            os.makedirs(package_dir, exist_ok=True)
            index = {"name": name, "versions": {str(v): meta for v, (meta, _) in sorted(versions.items())}}
            with open(os.path.join(package_dir, INDEX_FILE), "w", encoding="utf-8") as fh:
                json.dump(index, fh, indent=2, sort_keys=True)
            for version, (_, content) in versions.items():
                if content is None:
                    continue
                version_dir = os.path.join(package_dir, str(version))
                os.makedirs(version_dir, exist_ok=True)
                with open(os.path.join(version_dir, ARCHIVE_FILE), "wb") as fh:
                    fh.write(content)
