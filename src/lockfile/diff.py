"""Differences between two lockfiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .models import Lockfile


@dataclass
class UpdateDiff:
    """Packages added, removed, upgraded and downgraded by an update."""
    added: List[Tuple[str, str]] = field(default_factory=list)
    removed: List[Tuple[str, str]] = field(default_factory=list)
    upgraded: List[Tuple[str, str, str]] = field(default_factory=list)
    downgraded: List[Tuple[str, str, str]] = field(default_factory=list)
    unchanged: int = 0

    @classmethod
    def between(cls, old: Optional[Lockfile], new: Lockfile) -> "UpdateDiff":
        diff = cls()
        old_entries = {e.name: e for e in old} if old is not None else {}
        for entry in new:
            before = old_entries.get(entry.name)
            if before is None:
                diff.added.append((entry.name, entry.version))
                continue
            old_version, new_version = before.semantic_version, entry.semantic_version
            if new_version > old_version:
                diff.upgraded.append((entry.name, before.version, entry.version))
            elif new_version < old_version:
                diff.downgraded.append((entry.name, before.version, entry.version))
            else:
                diff.unchanged += 1
        for name in sorted(set(old_entries) - set(new.names())):
            diff.removed.append((name, old_entries[name].version))
        return diff

    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.upgraded or self.downgraded)

    def summary(self) -> List[str]:
        lines = [f"+ {n} {v}" for n, v in self.added]
        lines += [f"- {n} {v}" for n, v in self.removed]
        lines += [f"^ {n} {a} -> {b}" for n, a, b in self.upgraded]
        lines += [f"v {n} {a} -> {b}" for n, a, b in self.downgraded]
        return lines
