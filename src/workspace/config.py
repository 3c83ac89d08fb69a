"""Workspace configuration from ``workspace.yaml`` or a root manifest."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from common.errors import ConstraintParseError, ManifestError, WorkspaceError
from constants import Constants
from versioning.constraint import Constraint
from versioning.parser import parse_constraint

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceConfig:
    """Discovery globs, exclusions and workspace-level dependencies."""

    name: str = "workspace"
    packages: List[str] = field(default_factory=lambda: list(Constants.DEFAULT_WORKSPACE_PATTERNS))
    exclude: List[str] = field(default_factory=list)
    default_members: Optional[List[str]] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    source: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Any, origin: str) -> "WorkspaceConfig":
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise WorkspaceError(f"{origin}: workspace configuration must be a mapping")
        config = cls(source=origin)
        if "name" in data and data["name"] is not None:
            config.name = str(data["name"])
        config.packages = _string_list(data, "packages", origin, config.packages)
        config.exclude = _string_list(data, "exclude", origin, [])
        if data.get("default-members") is not None or data.get("default_members") is not None:
            raw = data.get("default-members", data.get("default_members"))
            config.default_members = _string_list({"default-members": raw}, "default-members", origin, [])
        config.dependencies = _string_map(data.get("dependencies"), "dependencies", origin)
        config.dev_dependencies = _string_map(data.get("dev_dependencies"), "dev_dependencies", origin)
        return config

    @classmethod
    def find(cls, root: str) -> Optional["WorkspaceConfig"]:
        """Workspace config for ``root``, or None when ``root`` is not a workspace.

        ``workspace.yaml`` wins over a ``workspace`` section in ``package.yaml``.
        """
        ws_file = os.path.join(root, Constants.WORKSPACE_FILE)
        if os.path.isfile(ws_file):
            return cls.from_mapping(read_yaml(ws_file), ws_file)
        manifest_file = os.path.join(root, Constants.MANIFEST_FILE)
        if os.path.isfile(manifest_file):
            data = read_yaml(manifest_file)
            if isinstance(data, Mapping) and isinstance(data.get("workspace"), Mapping):
                section = dict(data["workspace"])
                section.setdefault("name", data.get("name") or "workspace")
                return cls.from_mapping(section, manifest_file)
        return None

    def shared_constraints(self, dev: bool = False) -> Dict[str, Constraint]:
        """Parse workspace-level constraints, reporting every bad entry at once."""
        texts = self.dev_dependencies if dev else self.dependencies
        parsed: Dict[str, Constraint] = {}
        errors: List[Exception] = []
        for name, text in texts.items():
            try:
                parsed[name] = parse_constraint(text, requirer=f"workspace {self.name} -> {name}")
            except ConstraintParseError as exc:
                errors.append(exc)
        if errors:
            raise ManifestError(self.source or Constants.WORKSPACE_FILE, errors)
        return parsed


def read_yaml(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise WorkspaceError(f"{path}: invalid YAML: {exc}") from exc


def _string_list(data: Mapping, key: str, origin: str, default: List[str]) -> List[str]:
    value = data.get(key)
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise WorkspaceError(f"{origin}: '{key}' must be a list of strings")
    return list(value)


def _string_map(value: Any, key: str, origin: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise WorkspaceError(f"{origin}: '{key}' must be a mapping")
    return {str(k): ("" if v is None else str(v)) for k, v in value.items()}
