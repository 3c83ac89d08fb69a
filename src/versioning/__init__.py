"""Semantic versions, constraints and the constraint text parser."""

from .models import ResolutionStrategy, SemanticVersion, compare, parse_version
from .constraint import Bound, Constraint, Interval, intersect_all
from .parser import parse_constraint

__all__ = [
    "ResolutionStrategy",
    "SemanticVersion",
    "compare",
    "parse_version",
    "Bound",
    "Constraint",
    "Interval",
    "intersect_all",
    "parse_constraint",
]
