"""Lockfile computation, verification and incremental update."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional

from common.errors import LockfileError
from common.logging_utils import extra_context
from constants import Constants
from resolver.models import ResolutionGraph
from versioning.models import SemanticVersion, parse_version

from .checksum import compute_checksum, parse_checksum, verify_checksum
from .models import IntegrityViolation, LockEntry, Lockfile

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, SemanticVersion], bytes]


class LockfileManager:
    """Turns resolution graphs and fetched bytes into lockfiles."""

    def __init__(self, algorithm: str = Constants.DEFAULT_CHECKSUM_ALGORITHM):
        if algorithm not in Constants.SUPPORTED_CHECKSUM_ALGORITHMS:
            raise LockfileError(f"unsupported checksum algorithm '{algorithm}'")
        self.algorithm = algorithm

    def _entry(self, graph: ResolutionGraph, name: str, content: bytes) -> LockEntry:
        return LockEntry(
            name=name,
            version=str(graph.selected[name]),
            checksum=compute_checksum(content, self.algorithm),
            dependencies={d: str(v) for d, v in sorted(graph.dependencies_of(name).items())},
        )

    def compute(self, graph: ResolutionGraph, fetched_content: Mapping[str, bytes]) -> Lockfile:
        """Lock every selected package of ``graph``.

        Raises:
            LockfileError: listing every selected package without fetched content.
        """
        missing = sorted(n for n in graph.selected if n not in fetched_content)
        if missing:
            raise LockfileError(f"no fetched content for: {', '.join(missing)}")
        entries = [self._entry(graph, name, fetched_content[name]) for name in sorted(graph.selected)]
        return Lockfile(entries=entries)

    def verify(self, lockfile: Lockfile, installed_content: Mapping[str, Optional[bytes]]) -> List[IntegrityViolation]:
        """Compare installed bytes with the lockfile.

        ``installed_content`` maps package names to their bytes, or None when
        the package is absent. Each mismatch, missing and extra package is
        reported once, ordered by name.
        """
        violations = []
        for entry in lockfile:
            content = installed_content.get(entry.name)
            if content is None:
                violations.append(IntegrityViolation(entry.name, "missing", expected=entry.checksum))
                continue
            if not verify_checksum(content, entry.checksum):
                algorithm, _ = parse_checksum(entry.checksum)
                violations.append(IntegrityViolation(
                    entry.name, "mismatch",
                    expected=entry.checksum, actual=compute_checksum(content, algorithm),
                ))
        for name in sorted(installed_content):
            if name not in lockfile and installed_content[name] is not None:
                violations.append(IntegrityViolation(name, "extra"))
        violations.sort(key=lambda v: v.name)
        if violations:
            logger.info("Lockfile verification found %d violation(s)", len(violations),
                        extra=extra_context(event="verify", component="lockfile", outcome="violations"))
        return violations

    def update(self, old_lockfile: Optional[Lockfile], new_graph: ResolutionGraph, fetch: Fetcher) -> Lockfile:
        """Lock ``new_graph``, reusing unchanged entries from ``old_lockfile``.

        An entry is reused when its name, version and direct dependency
        versions are unchanged; only the remaining packages are fetched.
        """
        entries = []
        reused = 0
        for name in sorted(new_graph.selected):
            version = new_graph.selected[name]
            deps = {d: str(v) for d, v in new_graph.dependencies_of(name).items()}
            previous = old_lockfile.get(name) if old_lockfile is not None else None
            if previous is not None and _same_version(previous.version, version) and previous.dependencies == deps:
                entries.append(previous)
                reused += 1
                continue
            entries.append(self._entry(new_graph, name, fetch(name, version)))
        logger.debug("Lockfile update reused %d of %d entries", reused, len(entries))
        return Lockfile(entries=entries)


def _same_version(text: str, version: SemanticVersion) -> bool:
    return parse_version(text) == version


def collect_content(graph: ResolutionGraph, fetch: Fetcher) -> Dict[str, bytes]:
    """Fetch the content of every selected package, keyed by name."""
    return {name: fetch(name, version) for name, version in sorted(graph.selected.items())}
