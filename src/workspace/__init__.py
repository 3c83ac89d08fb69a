"""Workspace discovery, member filters and edge merging."""

from .config import WorkspaceConfig
from .workspace import Member, Workspace, glob_match, normalize_path
from .filter import FilterKind, MemberFilter, member_links, select_members
from .graph import ConstraintDivergence, WorkspaceGraph, build_graph, constraint_divergences

__all__ = [
    "WorkspaceConfig",
    "Member",
    "Workspace",
    "glob_match",
    "normalize_path",
    "FilterKind",
    "MemberFilter",
    "member_links",
    "select_members",
    "ConstraintDivergence",
    "WorkspaceGraph",
    "build_graph",
    "constraint_divergences",
]
