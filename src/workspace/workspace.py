"""Workspace member discovery."""

from __future__ import annotations

import logging
import os
import posixpath
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Dict, List, Optional

from common.errors import ManifestError, WorkspaceError
from constants import Constants
from manifest import Manifest

from .config import WorkspaceConfig, read_yaml

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Relative member path in POSIX form without ``.`` segments."""
    norm = posixpath.normpath(path.replace(os.sep, "/").replace("\\", "/"))
    return "." if norm in ("", ".") else norm


def glob_match(pattern: str, path: str) -> bool:
    """Match ``path`` segment by segment; ``**`` spans any number of segments."""
    return _match_segments(normalize_path(pattern).split("/"), normalize_path(path).split("/"))


def _match_segments(pattern: List[str], parts: List[str]) -> bool:
    if not pattern:
        return not parts
    head = pattern[0]
    if head == "**":
        return any(_match_segments(pattern[1:], parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatchcase(parts[0], head) and _match_segments(pattern[1:], parts[1:])


@dataclass
class Member:
    """One package in the workspace."""
    name: str
    path: str
    manifest: Manifest


class Workspace:
    """Root directory, configuration and members keyed by normalized path.

    Built fresh for every operation; nothing is cached between runs.
    """

    def __init__(self, root: str, config: WorkspaceConfig, members: Dict[str, Member],
                 root_manifest: Optional[Manifest] = None, single: bool = False):
        self.root = os.path.abspath(root)
        self.config = config
        self.members = members
        self.root_manifest = root_manifest
        self.is_single = single
        self._by_name = {m.name: m for m in members.values()}

    @classmethod
    def load(cls, root: str) -> "Workspace":
        """Workspace at ``root``, falling back to a single-package project."""
        config = WorkspaceConfig.find(root)
        if config is None:
            return cls.single(root)
        return cls.discover(root, config)

    @classmethod
    def single(cls, root: str) -> "Workspace":
        """A project whose only member is the manifest at ``root``."""
        manifest = Manifest.load(os.path.join(root, Constants.MANIFEST_FILE))
        member = Member(manifest.name, ".", manifest)
        config = WorkspaceConfig(name=manifest.name, packages=["."])
        return cls(root, config, {".": member}, root_manifest=None, single=True)

    @classmethod
    def discover(cls, root: str, config: Optional[WorkspaceConfig] = None) -> "Workspace":
        """Walk ``root`` once and load every manifest matched by the discovery globs.

        Raises:
            WorkspaceError: on duplicate member names or unloadable manifests,
                listing every bad manifest.
        """
        if not os.path.isdir(root):
            raise WorkspaceError(f"workspace root does not exist: {root}")
        config = config or WorkspaceConfig()
        members: Dict[str, Member] = {}
        problems: List[str] = []

        for dirpath, dirnames, filenames in os.walk(root):
            rel = normalize_path(os.path.relpath(dirpath, root))
            depth = 0 if rel == "." else rel.count("/") + 1
            kept = []
            for child in sorted(dirnames):
                child_rel = child if rel == "." else f"{rel}/{child}"
                if child.startswith(".") or child == Constants.INSTALL_DIR:
                    continue
                if depth >= Constants.WORKSPACE_MAX_DEPTH or _excluded(child_rel, config.exclude):
                    continue
                kept.append(child)
            dirnames[:] = kept

            if rel == "." or Constants.MANIFEST_FILE not in filenames:
                continue
            if not any(glob_match(p, rel) for p in config.packages):
                continue
            try:
                manifest = Manifest.load(os.path.join(dirpath, Constants.MANIFEST_FILE))
            except ManifestError as exc:
                problems.append(str(exc))
                continue
            members[rel] = Member(manifest.name, rel, manifest)

        if problems:
            raise WorkspaceError("invalid member manifest(s):\n" + "\n".join(problems))
        _check_unique_names(members)

        root_manifest = None
        manifest_file = os.path.join(root, Constants.MANIFEST_FILE)
        if os.path.isfile(manifest_file) and _declares_package(manifest_file):
            root_manifest = Manifest.load(manifest_file)

        logger.debug("Discovered %d workspace member(s) under %s", len(members), root)
        return cls(root, config, dict(sorted(members.items())), root_manifest=root_manifest)

    @property
    def name(self) -> str:
        return self.config.name

    def names(self) -> List[str]:
        return sorted(self._by_name)

    def member(self, name: str) -> Member:
        try:
            return self._by_name[name]
        except KeyError:
            raise WorkspaceError(
                f"unknown workspace member '{name}'; known members: {', '.join(self.names()) or '<none>'}"
            ) from None

    def has_member(self, name: str) -> bool:
        return name in self._by_name

    def default_members(self) -> List[Member]:
        """Configured default members, or every member."""
        if self.config.default_members is None:
            return [self._by_name[n] for n in self.names()]
        return [self.member(n) for n in self.config.default_members]


def _excluded(rel: str, patterns: List[str]) -> bool:
    return any(glob_match(p, rel) for p in patterns)


def _check_unique_names(members: Dict[str, Member]) -> None:
    seen: Dict[str, str] = {}
    duplicates = []
    for path, member in members.items():
        if member.name in seen:
            duplicates.append(f"'{member.name}' at {seen[member.name]} and {path}")
        else:
            seen[member.name] = path
    if duplicates:
        raise WorkspaceError("duplicate workspace member name(s): " + "; ".join(duplicates))


def _declares_package(manifest_file: str) -> bool:
    # A root manifest holding only a workspace section is not a package.
    data = read_yaml(manifest_file)
    return isinstance(data, dict) and "name" in data
