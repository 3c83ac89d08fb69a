"""Lockfile data model and canonical JSON serialization."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional

from common.errors import ConstraintParseError, LockfileError
from constants import Constants
from versioning.models import SemanticVersion, parse_version

from .checksum import parse_checksum


@dataclass(frozen=True)
class LockEntry:
    """One locked package: exact version, content checksum, direct dependency versions."""
    name: str
    version: str
    checksum: str
    dependencies: Dict[str, str] = field(default_factory=dict)

    @property
    def semantic_version(self) -> SemanticVersion:
        return parse_version(self.version)

    @property
    def algorithm(self) -> str:
        return self.checksum.partition(":")[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "checksum": self.checksum,
            "dependencies": dict(sorted(self.dependencies.items())),
        }

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> "LockEntry":
        if not isinstance(data, Mapping):
            raise LockfileError(f"packages[{index}] must be an object")
        missing = [k for k in ("name", "version", "checksum") if not isinstance(data.get(k), str)]
        if missing:
            raise LockfileError(f"packages[{index}] is missing string field(s): {', '.join(missing)}")
        deps = data.get("dependencies") or {}
        if not isinstance(deps, Mapping):
            raise LockfileError(f"packages[{index}].dependencies must be an object")
        try:
            parse_version(data["version"])
        except ConstraintParseError as exc:
            raise LockfileError(f"packages[{index}] ({data['name']}): {exc}") from exc
        parse_checksum(data["checksum"])
        return cls(
            name=data["name"],
            version=data["version"],
            checksum=data["checksum"],
            dependencies={str(k): str(v) for k, v in deps.items()},
        )


@dataclass
class Lockfile:
    """Name-ordered lock entries plus the format version."""
    entries: List[LockEntry] = field(default_factory=list)
    lockfile_version: int = Constants.LOCKFILE_FORMAT_VERSION

    def __post_init__(self) -> None:
        self.entries = sorted(self.entries, key=lambda e: e.name)
        names = [e.name for e in self.entries]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise LockfileError(f"duplicate lockfile entries: {', '.join(duplicates)}")
        self._index = {e.name: e for e in self.entries}

    def __iter__(self) -> Iterator[LockEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Lockfile):
            return NotImplemented
        return self.lockfile_version == other.lockfile_version and self.entries == other.entries

    def get(self, name: str) -> Optional[LockEntry]:
        return self._index.get(name)

    def names(self) -> List[str]:
        return [e.name for e in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lockfile_version": self.lockfile_version,
            "packages": [e.to_dict() for e in self.entries],
        }

    def dumps(self) -> str:
        """Canonical text: equal lockfiles always serialize to identical bytes."""
        return json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    @classmethod
    def loads(cls, text: str) -> "Lockfile":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LockfileError(f"lockfile is not valid JSON: {exc}") from exc
        if not isinstance(data, Mapping):
            raise LockfileError("lockfile must be a JSON object")
        version = data.get("lockfile_version")
        if version != Constants.LOCKFILE_FORMAT_VERSION:
            raise LockfileError(
                f"unsupported lockfile_version {version!r}; expected {Constants.LOCKFILE_FORMAT_VERSION}"
            )
        packages = data.get("packages")
        if not isinstance(packages, list):
            raise LockfileError("lockfile 'packages' must be a list")
        entries = [LockEntry.from_dict(p, i) for i, p in enumerate(packages)]
        return cls(entries=entries, lockfile_version=version)


@dataclass(frozen=True)
class IntegrityViolation:
    """One verification finding.

    ``kind`` is ``mismatch`` (content differs), ``missing`` (locked but not
    installed) or ``extra`` (installed but not locked).
    """
    name: str
    kind: str
    expected: Optional[str] = None
    actual: Optional[str] = None

    def __str__(self) -> str:
        if self.kind == "mismatch":
            return f"{self.name}: checksum mismatch (expected {self.expected}, got {self.actual})"
        if self.kind == "missing":
            return f"{self.name}: locked but not installed"
        return f"{self.name}: installed but not in lockfile"
