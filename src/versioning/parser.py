"""Constraint text parsing.

Grammar accepted by ``parse_constraint``:

* ``*``, ``x``, ``latest`` or empty text: any version.
* ``1.2.3`` / ``=1.2.3`` / ``==1.2.3``: exactly that version.
* ``>=``, ``<=``, ``>``, ``<`` comparators.
* ``^1.2.3``: compatible with the leftmost non-zero component.
* ``~1.2.3``: patch-level changes; ``~> 1.2`` bumps the last given component.
* Partial and x-ranges (``1``, ``1.2``, ``1.2.x``) cover the omitted parts.
* ``1.2.3 - 2.0.0`` hyphen ranges, inclusive on both ends.
* ``||`` separates alternatives; terms inside one alternative are ANDed
  and may be separated by whitespace or commas.
"""

import re
from typing import NamedTuple, Optional, Tuple

from common.errors import ConstraintParseError

from .constraint import Bound, Constraint, Interval
from .models import SemanticVersion

_ANY_TOKENS = ("", "*", "x", "X", "latest")
_TERM = re.compile(r"^(~>|>=|<=|==|>|<|=|\^|~)?(.*)$")
_OPERATOR_GAP = re.compile(r"(~>|>=|<=|==|>|<|=|\^|~)\s+")
_HYPHEN = re.compile(r"\s+-\s+")
_ROCKSPEC_REVISION = re.compile(r"^v?(\d+)\.(\d+)-(\d+)$")
_PARTIAL = re.compile(
    r"^v?(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)
_IDENTIFIER = re.compile(r"^[0-9A-Za-z-]+$")


class _Partial(NamedTuple):
    """A possibly incomplete version; ``precision`` counts given components."""
    major: int
    minor: int
    patch: int
    precision: int
    prerelease: Tuple[str, ...]
    build: Tuple[str, ...]

    def floor(self) -> SemanticVersion:
        return SemanticVersion(self.major, self.minor, self.patch, self.prerelease, self.build)

    def bump(self, position: int) -> SemanticVersion:
        """Smallest release above every version sharing the first ``position`` components."""
        if position == 1:
            return SemanticVersion(self.major + 1, 0, 0)
        if position == 2:
            return SemanticVersion(self.major, self.minor + 1, 0)
        return SemanticVersion(self.major, self.minor, self.patch + 1)


def _fail(text: str, offending: str, reason: str, requirer: Optional[str]) -> ConstraintParseError:
    return ConstraintParseError(text, offending=offending, reason=reason, requirer=requirer)


def _parse_partial(token: str, text: str, requirer: Optional[str]) -> _Partial:
    rock = _ROCKSPEC_REVISION.match(token)
    if rock:
        token = f"{rock.group(1)}.{rock.group(2)}.{rock.group(3)}"

    match = _PARTIAL.match(token)
    if not match:
        raise _fail(text, token, "not a version", requirer)

    numbers = []
    for part in (match.group("major"), match.group("minor"), match.group("patch")):
        if part is None or part in ("x", "X", "*"):
            break
        if len(part) > 1 and part.startswith("0"):
            raise _fail(text, part, "leading zero in numeric component", requirer)
        numbers.append(int(part))
    precision = len(numbers)
    numbers.extend([0] * (3 - precision))

    prerelease: Tuple[str, ...] = ()
    if match.group("pre"):
        if precision < 3:
            raise _fail(text, token, "prerelease tag needs a full major.minor.patch", requirer)
        prerelease = tuple(match.group("pre").split("."))
        for ident in prerelease:
            if not ident or not _IDENTIFIER.match(ident):
                raise _fail(text, ident or token, "empty or invalid prerelease identifier", requirer)
            if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
                raise _fail(text, ident, "leading zero in numeric prerelease identifier", requirer)
    build = tuple(match.group("build").split(".")) if match.group("build") else ()

    return _Partial(numbers[0], numbers[1], numbers[2], precision, prerelease, build)


def _caret_ceiling(p: _Partial) -> SemanticVersion:
    if p.major > 0 or p.precision == 1:
        return p.bump(1)
    if p.minor > 0 or p.precision == 2:
        return p.bump(2)
    return p.bump(3)


def _term_interval(op: str, p: _Partial, token: str, text: str, requirer: Optional[str]) -> Interval:
    if p.precision == 0:
        if op in (">", "<"):
            raise _fail(text, token, "comparator needs a concrete version", requirer)
        return Interval()

    floor = Bound(p.floor(), True)
    if op in ("", "=", "=="):
        if p.precision == 3:
            return Interval(floor, floor)
        return Interval(floor, Bound(p.bump(p.precision), False))
    if op == ">=":
        return Interval(lower=floor)
    if op == ">":
        if p.precision == 3:
            return Interval(lower=Bound(p.floor(), False))
        return Interval(lower=Bound(p.bump(p.precision), True))
    if op == "<":
        return Interval(upper=Bound(p.floor(), False))
    if op == "<=":
        if p.precision == 3:
            return Interval(upper=Bound(p.floor(), True))
        return Interval(upper=Bound(p.bump(p.precision), False))
    if op == "^":
        return Interval(floor, Bound(_caret_ceiling(p), False))
    if op == "~":
        return Interval(floor, Bound(p.bump(1 if p.precision == 1 else 2), False))
    if op == "~>":
        return Interval(floor, Bound(p.bump(p.precision), False))
    raise _fail(text, token, f"unknown operator '{op}'", requirer)


def _hyphen_interval(low: str, high: str, text: str, requirer: Optional[str]) -> Interval:
    lo = _parse_partial(low, text, requirer)
    hi = _parse_partial(high, text, requirer)
    lower = Bound(lo.floor(), True) if lo.precision else None
    if hi.precision == 0:
        upper = None
    elif hi.precision == 3:
        upper = Bound(hi.floor(), True)
    else:
        upper = Bound(hi.bump(hi.precision), False)
    return Interval(lower, upper)


def _alternative_interval(alternative: str, text: str, requirer: Optional[str]) -> Interval:
    sides = _HYPHEN.split(alternative)
    if len(sides) == 2:
        return _hyphen_interval(sides[0], sides[1], text, requirer)
    if len(sides) > 2:
        raise _fail(text, alternative, "hyphen range takes exactly two versions", requirer)

    joined = _OPERATOR_GAP.sub(r"\1", alternative.replace(",", " "))
    result = Interval()
    for token in joined.split():
        op, rest = _TERM.match(token).groups()
        if not rest:
            raise _fail(text, token, "missing version after operator", requirer)
        if rest[0] in "<>=^~":
            raise _fail(text, token, "unknown operator", requirer)
        partial = _parse_partial(rest, text, requirer)
        result = result.intersect(_term_interval(op or "", partial, token, text, requirer))
    return result


def parse_constraint(text: Optional[str], requirer: Optional[str] = None) -> Constraint:
    """Parse constraint text into a canonical Constraint.

    Args:
        text: Constraint text as written in a manifest or package metadata.
        requirer: Optional name attached to parse errors.

    Returns:
        Constraint: the parsed constraint; ``raw`` keeps the original text.

    Raises:
        ConstraintParseError: naming the substring that could not be parsed.
    """
    raw = "" if text is None else str(text).strip()
    if raw in _ANY_TOKENS:
        return Constraint.any()

    intervals = []
    for alternative in raw.split("||"):
        alternative = alternative.strip()
        if not alternative:
            raise _fail(raw, "||", "empty alternative", requirer)
        if alternative in _ANY_TOKENS:
            intervals.append(Interval())
            continue
        intervals.append(_alternative_interval(alternative, raw, requirer))
    return Constraint.from_intervals(intervals, raw=raw)


def is_valid_constraint(text: Optional[str]) -> bool:
    """True when ``text`` parses."""
    try:
        parse_constraint(text)
    except ConstraintParseError:
        return False
    return True


__all__ = ["parse_constraint", "is_valid_constraint"]
