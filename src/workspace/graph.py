"""Merge member edges into one hoisted edge set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from common.errors import ManifestError, WorkspaceError
from constants import DependencyKind
from resolver.models import DependencyEdge, PackageId

from .filter import select_members
from .workspace import Member, Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConstraintDivergence:
    """A package several requirers constrain differently. Informational only."""
    package: str
    requirements: Tuple[Tuple[str, str], ...]

    def __str__(self) -> str:
        parts = ", ".join(f"{who} requires {text}" for who, text in self.requirements)
        return f"{self.package} is required with differing constraints: {parts}"


@dataclass
class WorkspaceGraph:
    """Edges that take part in resolution plus member-to-member links."""
    members: List[Member] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    internal: List[DependencyEdge] = field(default_factory=list)
    diagnostics: List[ConstraintDivergence] = field(default_factory=list)

    def member_names(self) -> List[str]:
        return [m.name for m in self.members]


def build_graph(workspace: Workspace, filters: Iterable[str] = (), include_dev: bool = True) -> WorkspaceGraph:
    """Collect edges from the selected members, the root manifest and the workspace itself.

    Edges targeting another member are internal links: they shape filters
    but are not resolved against the package source.

    Raises:
        WorkspaceError: listing every member whose edges could not be built.
    """
    members = select_members(workspace, filters)
    shared = workspace.config.shared_constraints()
    shared_dev = workspace.config.shared_constraints(dev=True) if include_dev else {}

    collected: List[DependencyEdge] = []
    workspace_id = PackageId(workspace.name)
    for name, constraint in shared.items():
        collected.append(DependencyEdge(workspace_id, name, constraint, DependencyKind.RUNTIME))
    for name, constraint in shared_dev.items():
        collected.append(DependencyEdge(workspace_id, name, constraint, DependencyKind.DEV))

    manifests = [m.manifest for m in members]
    if workspace.root_manifest is not None:
        manifests.insert(0, workspace.root_manifest)

    problems: List[str] = []
    for manifest in manifests:
        try:
            collected.extend(manifest.edges(shared, shared_dev, include_dev=include_dev))
        except ManifestError as exc:
            problems.append(str(exc))
    if problems:
        raise WorkspaceError("could not build workspace edges:\n" + "\n".join(problems))

    graph = WorkspaceGraph(members=members)
    for edge in collected:
        if workspace.has_member(edge.target) and not workspace.is_single:
            graph.internal.append(edge)
        else:
            graph.edges.append(edge)
    graph.diagnostics = constraint_divergences(graph.edges)
    for diagnostic in graph.diagnostics:
        logger.warning("%s", diagnostic)
    return graph


def constraint_divergences(edges: Iterable[DependencyEdge]) -> List[ConstraintDivergence]:
    """Packages required by more than one requirer under different constraints."""
    by_target: Dict[str, List[DependencyEdge]] = {}
    for edge in edges:
        by_target.setdefault(edge.target, []).append(edge)

    found = []
    for target in sorted(by_target):
        group = by_target[target]
        if len({str(e.constraint) for e in group}) < 2:
            continue
        pairs = tuple(sorted(
            (str(e.requirer), e.constraint.text + (" (dev)" if e.kind == DependencyKind.DEV else ""))
            for e in group
        ))
        found.append(ConstraintDivergence(target, pairs))
    return found
