"""Member selection filters.

* ``name``: just that member.
* ``name...``: the member plus every member that depends on it.
* ``...name``: the member plus everything it depends on inside the workspace.
* ``lib-*``: every member whose name matches the glob.

Repeated filters are unioned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from typing import Dict, Iterable, List, Mapping, Set

from common.errors import WorkspaceError

from .workspace import Member, Workspace

logger = logging.getLogger(__name__)

_ELLIPSIS = "..."
_GLOB_CHARS = ("*", "?", "[")


class FilterKind(Enum):
    EXACT = "exact"
    WITH_DEPENDENTS = "with_dependents"
    WITH_DEPENDENCIES = "with_dependencies"
    GLOB = "glob"


@dataclass(frozen=True)
class MemberFilter:
    """One parsed filter expression."""
    kind: FilterKind
    target: str

    @classmethod
    def parse(cls, text: str) -> "MemberFilter":
        raw = text.strip()
        if raw.endswith(_ELLIPSIS) and not raw.startswith(_ELLIPSIS):
            kind, target = FilterKind.WITH_DEPENDENTS, raw[: -len(_ELLIPSIS)]
        elif raw.startswith(_ELLIPSIS) and not raw.endswith(_ELLIPSIS):
            kind, target = FilterKind.WITH_DEPENDENCIES, raw[len(_ELLIPSIS):]
        elif any(c in raw for c in _GLOB_CHARS):
            kind, target = FilterKind.GLOB, raw
        else:
            kind, target = FilterKind.EXACT, raw
        if not target or _ELLIPSIS in target:
            raise WorkspaceError(f"invalid member filter '{text}'")
        return cls(kind, target)

    def __str__(self) -> str:
        if self.kind == FilterKind.WITH_DEPENDENTS:
            return f"{self.target}{_ELLIPSIS}"
        if self.kind == FilterKind.WITH_DEPENDENCIES:
            return f"{_ELLIPSIS}{self.target}"
        return self.target


def member_links(workspace: Workspace) -> Dict[str, Set[str]]:
    """Member name -> names of members it declares as dependencies."""
    links: Dict[str, Set[str]] = {}
    for member in workspace.members.values():
        declared = set(member.manifest.dependencies) | set(member.manifest.dev_dependencies)
        links[member.name] = {n for n in declared if workspace.has_member(n) and n != member.name}
    return links


def _closure(start: str, graph: Mapping[str, Set[str]]) -> Set[str]:
    seen = {start}
    stack = [start]
    while stack:
        current = stack.pop()
        for nxt in graph.get(current, ()):
            if nxt not in seen:
                seen.add(nxt)
                stack.append(nxt)
    return seen


def _reverse(graph: Mapping[str, Set[str]]) -> Dict[str, Set[str]]:
    reverse: Dict[str, Set[str]] = {name: set() for name in graph}
    for name, deps in graph.items():
        for dep in deps:
            reverse.setdefault(dep, set()).add(name)
    return reverse


def select_members(workspace: Workspace, filters: Iterable[str]) -> List[Member]:
    """Members matched by the union of ``filters``; default members when none given.

    Raises:
        WorkspaceError: when a filter names a member that does not exist.
    """
    parsed = [MemberFilter.parse(f) for f in filters]
    if not parsed:
        return workspace.default_members()

    links = member_links(workspace)
    dependents = _reverse(links)
    selected: Set[str] = set()
    for flt in parsed:
        if flt.kind == FilterKind.GLOB:
            matched = {n for n in workspace.names() if fnmatchcase(n, flt.target)}
            if not matched:
                logger.warning("Member filter '%s' matched no workspace members", flt)
            selected |= matched
            continue
        workspace.member(flt.target)
        if flt.kind == FilterKind.EXACT:
            selected.add(flt.target)
        elif flt.kind == FilterKind.WITH_DEPENDENTS:
            selected |= _closure(flt.target, dependents)
        else:
            selected |= _closure(flt.target, links)
    return [workspace.member(n) for n in sorted(selected)]
