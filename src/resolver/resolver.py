"""Fixed-point dependency resolver.

Each pass rebuilds the edge set from the root edges plus the runtime
dependencies published for the versions selected in the previous pass,
groups edges by target, intersects their constraints and picks one
published version per target. Passes repeat until neither the selections
nor the set of conflicts change.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from common.errors import PackageNotFoundError, ResolutionNonConvergence, VersionConflict
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import DependencyKind
from versioning.constraint import Constraint, intersect_all
from versioning.models import ResolutionStrategy, SemanticVersion
from versioning.parser import parse_constraint

from .cache import MetadataCache
from .models import Conflict, DependencyEdge, PackageId, ResolutionGraph, ResolverOptions

logger = logging.getLogger(__name__)

# Above this many edges on one package, lenient mode stops searching subsets
# exhaustively and drops edges from the most recently declared backwards.
EXHAUSTIVE_SUBSET_LIMIT = 12


class _Choice:
    __slots__ = ("version", "conflict", "dropped")

    def __init__(self, version: Optional[SemanticVersion], conflict: Optional[Conflict] = None,
                 dropped: Tuple[DependencyEdge, ...] = ()):
        self.version = version
        self.conflict = conflict
        self.dropped = dropped


class Resolver:
    """Resolves dependency edges against a package source."""

    def __init__(self, source: Any = None, options: Optional[ResolverOptions] = None,
                 cache: Optional[MetadataCache] = None):
        if cache is None:
            if source is None:
                raise ValueError("Resolver needs a package source or a metadata cache")
            cache = MetadataCache(source)
        self.cache = cache
        self.options = options or ResolverOptions()

    def resolve(self, edges: Iterable[DependencyEdge]) -> ResolutionGraph:
        """Resolve root edges and everything they pull in.

        Raises:
            VersionConflict: in strict mode, with every conflict found.
            ResolutionNonConvergence: when the iteration ceiling is reached.
            ConstraintParseError: when published metadata carries bad constraints.
        """
        roots = [e for e in edges if self.options.include_dev or e.kind != DependencyKind.DEV]
        selected: Dict[str, SemanticVersion] = {}
        previous_conflicts: Dict[str, Conflict] = {}
        unstable: List[str] = []

        with Timer() as timer:
            for iteration in range(1, self.options.max_iterations + 1):
                current_edges = roots + self._transitive_edges(selected)
                choices = {
                    target: self._choose(target, group)
                    for target, group in _group_by_target(current_edges).items()
                }
                new_selected = {t: c.version for t, c in choices.items() if c.version is not None}
                conflicts = {t: c.conflict for t, c in choices.items() if c.conflict is not None}

                if new_selected == selected and conflicts == previous_conflicts:
                    graph = self._finish(selected, current_edges, choices, conflicts)
                    logger.info(
                        "Resolved %d package(s) in %d iteration(s)",
                        len(graph.selected),
                        iteration,
                        extra=extra_context(
                            event="resolve", component="resolver", outcome="success",
                            duration_ms=timer.duration_ms(),
                        ),
                    )
                    return graph

                unstable = sorted(
                    name for name in set(selected) | set(new_selected)
                    if selected.get(name) != new_selected.get(name)
                )
                if is_debug_enabled(logger):
                    logger.debug(
                        "Resolver pass",
                        extra=extra_context(
                            event="resolve_pass", component="resolver", iteration=iteration,
                            changed=len(unstable),
                        ),
                    )
                selected = new_selected
                previous_conflicts = conflicts

        raise ResolutionNonConvergence(self.options.max_iterations, unstable)

    def _transitive_edges(self, selected: Dict[str, SemanticVersion]) -> List[DependencyEdge]:
        edges = []
        for name in sorted(selected):
            version = selected[name]
            requirer = PackageId(name, version)
            metadata = self.cache.metadata_for(name, version)
            for dep_name, text in _runtime_dependencies(metadata).items():
                constraint = parse_constraint(text, requirer=str(requirer))
                edges.append(DependencyEdge(requirer, dep_name, constraint, DependencyKind.RUNTIME))
        return edges

    def _published(self, name: str) -> List[Any]:
        try:
            return self.cache.list_versions(name)
        except PackageNotFoundError:
            logger.debug("Package %s not found in source", name)
            return []

    def _pick(self, name: str, constraint: Constraint) -> Tuple[Optional[SemanticVersion], str]:
        if constraint.is_empty:
            return None, "empty_intersection"
        published = [p.version for p in self._published(name)]
        if self.options.strategy == ResolutionStrategy.EXACT:
            pinned = constraint.single_version()
            if pinned is None:
                return None, "not_exact"
            matches = [v for v in published if v == pinned]
            return (matches[0], "") if matches else (None, "no_candidate")

        candidates = [v for v in published if constraint.satisfies(v) and constraint.admits_prerelease(v)]
        if not candidates:
            return None, "no_candidate"
        preferred = self.options.preferred.get(name)
        if preferred is not None and preferred in candidates:
            return candidates[candidates.index(preferred)], ""
        if self.options.strategy == ResolutionStrategy.LOWEST:
            return min(candidates), ""
        return max(candidates), ""

    def _choose(self, name: str, group: List[DependencyEdge]) -> _Choice:
        combined = intersect_all(e.constraint for e in group)
        version, reason = self._pick(name, combined)
        if version is not None:
            return _Choice(version)

        conflict = Conflict.from_edges(name, reason, group, combined)
        if self.options.strict:
            return _Choice(None, conflict)

        for subset in _candidate_subsets(group):
            version, _ = self._pick(name, intersect_all(e.constraint for e in subset))
            if version is not None:
                dropped = tuple(e for e in group if e not in subset)
                return _Choice(version, None, dropped)
        return _Choice(None, conflict)

    def _finish(self, selected: Dict[str, SemanticVersion], edges: List[DependencyEdge],
                choices: Dict[str, _Choice], conflicts: Dict[str, Conflict]) -> ResolutionGraph:
        if conflicts and self.options.strict:
            raise VersionConflict([conflicts[name] for name in sorted(conflicts)])

        graph = ResolutionGraph(selected=dict(sorted(selected.items())))
        dropped = {e for c in choices.values() for e in c.dropped}
        graph.edges = [
            e for e in edges
            if e not in dropped and e.target in selected and e.constraint.satisfies(selected[e.target])
        ]
        for name in sorted(choices):
            choice = choices[name]
            if choice.dropped:
                message = (f"{name}: selected {choice.version} ignoring "
                           + "; ".join(e.describe() for e in choice.dropped))
                graph.warnings.append(message)
                logger.warning("Conflicting requirements relaxed for %s", message)
        for name in sorted(conflicts):
            graph.unresolved[name] = conflicts[name]
            graph.warnings.append(f"unresolved {conflicts[name]}")
            logger.warning("Leaving package unresolved: %s", conflicts[name])
        for name, version in graph.selected.items():
            metadata = self.cache.metadata_for(name, version)
            if metadata is not None:
                graph.metadata[name] = metadata
        return graph


def _group_by_target(edges: List[DependencyEdge]) -> Dict[str, List[DependencyEdge]]:
    groups: Dict[str, List[DependencyEdge]] = {}
    for edge in edges:
        groups.setdefault(edge.target, []).append(edge)
    return groups


def _candidate_subsets(group: List[DependencyEdge]):
    """Edge subsets to try in lenient mode, largest first.

    Within one size, subsets keeping earlier-declared edges come first.
    """
    size = len(group)
    if size > EXHAUSTIVE_SUBSET_LIMIT:
        for keep in range(size - 1, 0, -1):
            yield group[:keep]
        return
    for keep in range(size - 1, 0, -1):
        for subset in itertools.combinations(group, keep):
            yield list(subset)


def _runtime_dependencies(metadata: Any) -> Dict[str, str]:
    if not metadata:
        return {}
    deps = metadata.get("dependencies") if isinstance(metadata, dict) else None
    if not isinstance(deps, dict):
        return {}
    return {str(k): ("" if v is None else str(v)) for k, v in deps.items()}


def resolve(edges: Iterable[DependencyEdge], source: Any,
            options: Optional[ResolverOptions] = None) -> ResolutionGraph:
    """Resolve ``edges`` with a fresh per-run metadata cache."""
    return Resolver(source, options).resolve(edges)
