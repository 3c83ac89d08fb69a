"""Data models for versions and resolution policy."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

import semantic_version

from common.errors import ConstraintParseError

# LuaRocks publishes "<major>.<minor>-<revision>"; the revision becomes the patch.
_ROCKSPEC_REVISION = re.compile(r"^(\d+)\.(\d+)-(\d+)$")


class ResolutionStrategy(Enum):
    """Which satisfying version the resolver picks when several qualify."""
    HIGHEST = "highest"
    LOWEST = "lowest"
    EXACT = "exact"

    @classmethod
    def parse(cls, value: Union[str, "ResolutionStrategy"]) -> "ResolutionStrategy":
        """Accept an enum member or its case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"Invalid resolution strategy '{value}'. Must be one of: {allowed}") from None


def _prerelease_key(identifiers: Tuple[str, ...]) -> tuple:
    # Release sorts above every prerelease of the same core triple.
    if not identifiers:
        return (1,)
    parts = []
    for ident in identifiers:
        if ident.isdigit():
            parts.append((0, int(ident), ""))
        else:
            parts.append((1, 0, ident))
    return (0, tuple(parts))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class SemanticVersion:
    """A parsed semantic version.

    Build metadata is kept for display only; it takes no part in ordering,
    equality or hashing.
    """
    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @property
    def precedence_key(self) -> tuple:
        """Tuple whose natural ordering is semver precedence."""
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def core(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.precedence_key == other.precedence_key

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self.precedence_key < other.precedence_key

    def __hash__(self) -> int:
        return hash(self.precedence_key)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def __repr__(self) -> str:
        return f"SemanticVersion('{self}')"


def parse_version(text: str) -> SemanticVersion:
    """Parse a version string into a SemanticVersion.

    Accepts strict semver (``1.2.3``, ``1.0.0-rc.1+build.5``), an optional
    leading ``v``, and the LuaRocks revision form ``3.0-1`` (read as 3.0.1).

    Raises:
        ConstraintParseError: on empty input, malformed numeric segments or
            prerelease identifiers with disallowed characters.
    """
    if text is None or not str(text).strip():
        raise ConstraintParseError(str(text or ""), reason="empty version")
    raw = str(text).strip()
    candidate = raw[1:] if raw[:1] in ("v", "V") else raw

    rock = _ROCKSPEC_REVISION.match(candidate)
    if rock:
        candidate = f"{int(rock.group(1))}.{int(rock.group(2))}.{int(rock.group(3))}"

    try:
        parsed = semantic_version.Version(candidate)
    except ValueError as exc:
        raise ConstraintParseError(raw, offending=_first_bad_segment(candidate), reason=str(exc)) from None

    return SemanticVersion(
        major=parsed.major,
        minor=parsed.minor,
        patch=parsed.patch,
        prerelease=tuple(parsed.prerelease or ()),
        build=tuple(parsed.build or ()),
    )


def _first_bad_segment(candidate: str) -> str:
    """Best-effort pointer at the segment that broke parsing."""
    head = candidate.split("+", 1)[0]
    main, _, prerelease = head.partition("-")
    segments = main.split(".")
    if len(segments) != 3:
        return main
    for segment in segments:
        if not segment.isdigit() or (len(segment) > 1 and segment.startswith("0")):
            return segment
    for ident in (prerelease.split(".") if prerelease else []):
        if not ident or not re.fullmatch(r"[0-9A-Za-z-]+", ident):
            return ident
        if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
            return ident
    return candidate


def compare(a: SemanticVersion, b: SemanticVersion) -> int:
    """Three-way comparison: -1 when a < b, 0 when equal, 1 when a > b."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0
