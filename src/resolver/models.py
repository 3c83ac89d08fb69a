"""Data models for dependency resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple

from constants import Constants, DependencyKind
from versioning.constraint import Constraint
from versioning.models import ResolutionStrategy, SemanticVersion


class PackageId(NamedTuple):
    """A package pinned at a version, or a manifest when ``version`` is None."""
    name: str
    version: Optional[SemanticVersion] = None

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version is not None else self.name


@dataclass(frozen=True)
class DependencyEdge:
    """``requirer`` needs ``target`` within ``constraint``."""
    requirer: PackageId
    target: str
    constraint: Constraint
    kind: DependencyKind = DependencyKind.RUNTIME

    def describe(self) -> str:
        return f"{self.requirer}: {self.target} {self.constraint.text}"


@dataclass(frozen=True)
class Conflict:
    """Why a package could not be assigned a version.

    ``reason`` is one of ``empty_intersection``, ``no_candidate`` or
    ``not_exact``.
    """
    package: str
    reason: str
    requirements: Tuple[Tuple[str, str], ...]
    constraint: Optional[Constraint] = None

    @classmethod
    def from_edges(cls, package: str, reason: str, edges: List[DependencyEdge],
                   constraint: Optional[Constraint] = None) -> "Conflict":
        pairs = tuple((str(e.requirer), e.constraint.text) for e in edges)
        return cls(package, reason, pairs, constraint)

    def __str__(self) -> str:
        required = ", ".join(f"{who} requires {text}" for who, text in self.requirements)
        if self.reason == "empty_intersection":
            return f"{self.package}: no version satisfies all of: {required}"
        if self.reason == "not_exact":
            return (f"{self.package}: constraint {self.constraint} does not denote a single "
                    f"version (required by {required})")
        return (f"{self.package}: no published version satisfies constraint "
                f"{self.constraint} required by {required}")


@dataclass
class ResolverOptions:
    """Explicit resolver configuration."""
    strategy: ResolutionStrategy = ResolutionStrategy.HIGHEST
    strict: bool = True
    max_iterations: int = Constants.RESOLVER_MAX_ITERATIONS
    include_dev: bool = True
    # Versions to keep when they still satisfy every constraint, usually from the lockfile.
    preferred: Dict[str, SemanticVersion] = field(default_factory=dict)


@dataclass
class ResolutionGraph:
    """Selected version per package plus every edge that led there."""
    selected: Dict[str, SemanticVersion] = field(default_factory=dict)
    edges: List[DependencyEdge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    unresolved: Dict[str, Conflict] = field(default_factory=dict)
    metadata: Dict[str, Mapping] = field(default_factory=dict)

    def dependencies_of(self, name: str) -> Dict[str, SemanticVersion]:
        """Selected versions of the direct dependencies of a selected package."""
        version = self.selected.get(name)
        if version is None:
            return {}
        requirer = PackageId(name, version)
        deps = {}
        for edge in self.edges:
            if edge.requirer == requirer and edge.target in self.selected:
                deps[edge.target] = self.selected[edge.target]
        return deps

    def package_ids(self) -> List[PackageId]:
        return [PackageId(n, v) for n, v in sorted(self.selected.items())]

    def __contains__(self, name: object) -> bool:
        return name in self.selected

    def __len__(self) -> int:
        return len(self.selected)
