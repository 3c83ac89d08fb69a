"""Canonical constraint model.

Every AND-group of comparators over a totally ordered version space is an
interval, so a constraint is stored as a union (OR) of intervals. That makes
intersection, emptiness and single-version detection plain interval
arithmetic, and gives a canonical text form for round-tripping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from .models import SemanticVersion

# Renders a constraint that no version satisfies; 0.0.0-0 is the minimum version.
EMPTY_CONSTRAINT_TEXT = "<0.0.0-0"


@dataclass(frozen=True)
class Bound:
    """One end of an interval."""
    version: SemanticVersion
    inclusive: bool


@dataclass(frozen=True)
class Interval:
    """A contiguous range of versions; a missing bound is unbounded."""
    lower: Optional[Bound] = None
    upper: Optional[Bound] = None

    @property
    def is_empty(self) -> bool:
        if self.lower is None or self.upper is None:
            return False
        lo, hi = self.lower.version, self.upper.version
        if lo > hi:
            return True
        return lo == hi and not (self.lower.inclusive and self.upper.inclusive)

    @property
    def is_unbounded(self) -> bool:
        return self.lower is None and self.upper is None

    @property
    def single_version(self) -> Optional[SemanticVersion]:
        """The version this interval pins, if it admits exactly one."""
        if self.lower is None or self.upper is None:
            return None
        if self.lower.inclusive and self.upper.inclusive and self.lower.version == self.upper.version:
            return self.lower.version
        return None

    def contains(self, version: SemanticVersion) -> bool:
        if self.lower is not None:
            if version < self.lower.version:
                return False
            if version == self.lower.version and not self.lower.inclusive:
                return False
        if self.upper is not None:
            if version > self.upper.version:
                return False
            if version == self.upper.version and not self.upper.inclusive:
                return False
        return True

    def intersect(self, other: "Interval") -> "Interval":
        return Interval(_tighter_lower(self.lower, other.lower), _tighter_upper(self.upper, other.upper))

    def bound_versions(self) -> Tuple[SemanticVersion, ...]:
        return tuple(b.version for b in (self.lower, self.upper) if b is not None)

    def __str__(self) -> str:
        if self.is_unbounded:
            return "*"
        pinned = self.single_version
        if pinned is not None:
            return f"={pinned}"
        terms = []
        if self.lower is not None:
            terms.append(f"{'>=' if self.lower.inclusive else '>'}{self.lower.version}")
        if self.upper is not None:
            terms.append(f"{'<=' if self.upper.inclusive else '<'}{self.upper.version}")
        return " ".join(terms)


def _tighter_lower(a: Optional[Bound], b: Optional[Bound]) -> Optional[Bound]:
    if a is None:
        return b
    if b is None:
        return a
    if a.version != b.version:
        return a if a.version > b.version else b
    return a if not a.inclusive else b


def _tighter_upper(a: Optional[Bound], b: Optional[Bound]) -> Optional[Bound]:
    if a is None:
        return b
    if b is None:
        return a
    if a.version != b.version:
        return a if a.version < b.version else b
    return a if not a.inclusive else b


@dataclass(frozen=True)
class Constraint:
    """An immutable OR of intervals.

    ``raw`` keeps the text the constraint was parsed from for diagnostics;
    it does not take part in equality.
    """
    intervals: Tuple[Interval, ...]
    raw: str = field(default="", compare=False)

    @classmethod
    def any(cls) -> "Constraint":
        return cls((Interval(),), raw="*")

    @classmethod
    def exactly(cls, version: SemanticVersion) -> "Constraint":
        bound = Bound(version, True)
        return cls((Interval(bound, bound),), raw=str(version))

    @classmethod
    def from_intervals(cls, intervals: Iterable[Interval], raw: str = "") -> "Constraint":
        kept = tuple(i for i in intervals if not i.is_empty)
        return cls(kept, raw=raw)

    @property
    def is_empty(self) -> bool:
        return not self.intervals

    @property
    def is_wildcard(self) -> bool:
        return any(i.is_unbounded for i in self.intervals)

    @property
    def text(self) -> str:
        """The declared text when known, otherwise the canonical form."""
        return self.raw or str(self)

    def satisfies(self, version: SemanticVersion) -> bool:
        """True when the version lies in any of the intervals."""
        return any(i.contains(version) for i in self.intervals)

    def admits_prerelease(self, version: SemanticVersion) -> bool:
        """Prerelease gate used when picking among published versions.

        A prerelease is only a candidate when some bound of this constraint
        carries a prerelease on the same major.minor.patch.
        """
        if not version.is_prerelease:
            return True
        for interval in self.intervals:
            for bound in interval.bound_versions():
                if bound.is_prerelease and bound.core == version.core:
                    return True
        return False

    def intersect(self, other: "Constraint") -> "Constraint":
        merged = [a.intersect(b) for a in self.intervals for b in other.intervals]
        result = Constraint.from_intervals(merged)
        return Constraint(result.intervals, raw=str(result))

    def single_version(self) -> Optional[SemanticVersion]:
        """The one concrete version this constraint denotes, if any."""
        pinned = {i.single_version for i in self.intervals}
        if len(pinned) == 1:
            (only,) = pinned
            return only
        return None

    def __str__(self) -> str:
        if not self.intervals:
            return EMPTY_CONSTRAINT_TEXT
        return " || ".join(str(i) for i in self.intervals)


def intersect_all(constraints: Iterable[Constraint]) -> Constraint:
    """Intersection of every constraint; the wildcard when given none."""
    result = Constraint.any()
    for constraint in constraints:
        result = result.intersect(constraint)
    return result
