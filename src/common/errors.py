"""Exception taxonomy shared by every rockyard component.

Aggregating errors keep the full list of diagnostics they were raised with
so callers can render every problem in a single pass.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from constants import ExitCodes


class RockyardError(Exception):
    """Base class for all rockyard errors."""

    exit_code = ExitCodes.FILE_ERROR


class ConfigError(RockyardError):
    """Invalid configuration value or unreadable configuration file."""


class ConstraintParseError(RockyardError, ValueError):
    """Malformed version or constraint text.

    Attributes:
        text: The full input that failed to parse.
        offending: The substring that could not be understood.
        requirer: Optional name of the manifest or package that declared it.
    """

    exit_code = ExitCodes.RESOLUTION_ERROR

    def __init__(self, text: str, offending: Optional[str] = None, reason: str = "",
                 requirer: Optional[str] = None):
        self.text = text
        self.offending = offending if offending is not None else text
        self.reason = reason
        self.requirer = requirer
        super().__init__(self._render())

    def _render(self) -> str:
        where = f" (declared by {self.requirer})" if self.requirer else ""
        detail = f": {self.reason}" if self.reason else ""
        return f"invalid constraint '{self.text}' at '{self.offending}'{detail}{where}"


class ManifestError(RockyardError):
    """A manifest could not be loaded; carries every parse error found in it."""

    def __init__(self, path: str, errors: Sequence[Exception]):
        self.path = path
        self.errors = list(errors)
        lines = [f"{path}: {len(self.errors)} problem(s)"]
        lines.extend(f"  - {err}" for err in self.errors)
        super().__init__("\n".join(lines))


class WorkspaceError(RockyardError):
    """Workspace configuration or filter could not be applied."""


class VersionConflict(RockyardError):
    """One or more packages could not be assigned a version.

    Attributes:
        conflicts: Every conflict found in the run, never just the first.
    """

    exit_code = ExitCodes.RESOLUTION_ERROR

    def __init__(self, conflicts: Sequence[Any]):
        self.conflicts = list(conflicts)
        lines = [f"{len(self.conflicts)} unresolved package(s):"]
        lines.extend(f"  - {c}" for c in self.conflicts)
        super().__init__("\n".join(lines))


class ResolutionNonConvergence(RockyardError):
    """Fixed-point iteration ceiling reached without a stable assignment."""

    exit_code = ExitCodes.RESOLUTION_ERROR

    def __init__(self, iterations: int, unstable: Sequence[str]):
        self.iterations = iterations
        self.unstable = sorted(unstable)
        super().__init__(
            f"resolution did not converge after {iterations} iterations; "
            f"selections kept changing for: {', '.join(self.unstable) or '<none>'}"
        )


class IntegrityViolationError(RockyardError):
    """Fetched or installed content does not match the lockfile."""

    exit_code = ExitCodes.INTEGRITY_ERROR

    def __init__(self, violations: Sequence[Any]):
        self.violations = list(violations)
        lines = [f"{len(self.violations)} integrity violation(s):"]
        lines.extend(f"  - {v}" for v in self.violations)
        super().__init__("\n".join(lines))


class LockfileError(RockyardError):
    """Lockfile is unreadable, malformed or of an unsupported format version."""


class FetchError(RockyardError):
    """Base class for package source failures."""

    exit_code = ExitCodes.CONNECTION_ERROR

    def __init__(self, name: str, version: Optional[str] = None, reason: str = ""):
        self.name = name
        self.version = version
        self.reason = reason
        target = f"{name}@{version}" if version else name
        super().__init__(f"{target}: {reason}" if reason else target)


class PackageNotFoundError(FetchError):
    """The source has no such package or version. Never retried."""


class TransientFetchError(FetchError):
    """Network-level failure that may succeed when retried."""


class ExtractionError(RockyardError):
    """Fetched content could not be placed into the destination."""


class LockConflict(RockyardError):
    """Another process holds the advisory lock for this project."""

    exit_code = ExitCodes.LOCKED

    def __init__(self, path: str, holder: str = ""):
        self.path = path
        self.holder = holder
        suffix = f" (held by {holder})" if holder else ""
        super().__init__(f"operation in progress: {path} is locked{suffix}")
