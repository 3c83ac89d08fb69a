"""Package manifest (``package.yaml``) loading.

A manifest looks like::

    name: my-app
    version: 0.3.0
    dependencies:
      penlight: ^1.13
      lpeg: workspace        # use the constraint the workspace declares
    dev_dependencies:
      busted: ~2.1
    workspace:               # optional, only in a workspace root
      packages: ["packages/*"]
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from common.errors import ConstraintParseError, ManifestError
from constants import Constants, DependencyKind
from resolver.models import DependencyEdge, PackageId
from versioning.constraint import Constraint
from versioning.parser import parse_constraint

logger = logging.getLogger(__name__)

# Constraint text meaning "inherit the workspace-level constraint".
INHERIT_MARKER = "workspace"


@dataclass
class Manifest:
    """Parsed manifest with its dependency constraints already validated."""

    name: str
    version: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    workspace: Optional[Dict[str, Any]] = None
    path: str = ""
    constraints: Dict[str, Constraint] = field(default_factory=dict, repr=False)
    dev_constraints: Dict[str, Constraint] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, path: str) -> "Manifest":
        """Load ``path``, or ``<path>/package.yaml`` when given a directory."""
        if os.path.isdir(path):
            path = os.path.join(path, Constants.MANIFEST_FILE)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except FileNotFoundError:
            raise ManifestError(path, [FileNotFoundError(f"no manifest at {path}")]) from None
        except yaml.YAMLError as exc:
            raise ManifestError(path, [exc]) from exc
        return cls.from_dict(data, path=path)

    @classmethod
    def from_dict(cls, data: Any, path: str = "<memory>") -> "Manifest":
        """Validate a decoded manifest, collecting every problem before raising."""
        if not isinstance(data, Mapping):
            raise ManifestError(path, [ValueError("manifest must be a mapping")])

        errors: List[Exception] = []
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(ValueError("'name' is required and must be a non-empty string"))
            name = ""
        version = data.get("version")

        deps = _string_map(data.get("dependencies"), "dependencies", errors)
        dev_deps = _string_map(data.get("dev_dependencies"), "dev_dependencies", errors)
        workspace = data.get("workspace")
        if workspace is not None and not isinstance(workspace, Mapping):
            errors.append(ValueError("'workspace' must be a mapping"))
            workspace = None

        requirer = name or path
        constraints = _parse_all(deps, requirer, errors)
        dev_constraints = _parse_all(dev_deps, requirer, errors)
        if errors:
            raise ManifestError(path, errors)

        return cls(
            name=name.strip(),
            version=None if version is None else str(version),
            dependencies=deps,
            dev_dependencies=dev_deps,
            workspace=dict(workspace) if workspace is not None else None,
            path=path,
            constraints=constraints,
            dev_constraints=dev_constraints,
        )

    @property
    def package_id(self) -> PackageId:
        return PackageId(self.name)

    def inherited_names(self) -> List[str]:
        """Dependencies that defer to the workspace-level constraint."""
        return sorted(
            n for n, t in {**self.dependencies, **self.dev_dependencies}.items()
            if t.strip() == INHERIT_MARKER
        )

    def edges(
        self,
        shared: Optional[Mapping[str, Constraint]] = None,
        shared_dev: Optional[Mapping[str, Constraint]] = None,
        include_dev: bool = True,
    ) -> List[DependencyEdge]:
        """Dependency edges declared by this manifest, runtime first.

        Raises:
            ManifestError: when a dependency inherits a constraint the
                workspace does not declare.
        """
        edges: List[DependencyEdge] = []
        missing: List[Exception] = []
        groups = [(self.dependencies, self.constraints, shared or {}, DependencyKind.RUNTIME)]
        if include_dev:
            groups.append((self.dev_dependencies, self.dev_constraints, shared_dev or {},
                           DependencyKind.DEV))
        for texts, parsed, inherited, kind in groups:
            for dep_name, text in texts.items():
                if text.strip() == INHERIT_MARKER:
                    constraint = inherited.get(dep_name)
                    if constraint is None:
                        missing.append(ValueError(
                            f"{dep_name}: inherits from the workspace but the workspace does not declare it"
                        ))
                        continue
                else:
                    constraint = parsed[dep_name]
                edges.append(DependencyEdge(self.package_id, dep_name, constraint, kind))
        if missing:
            raise ManifestError(self.path, missing)
        return edges


def _string_map(value: Any, key: str, errors: List[Exception]) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        errors.append(ValueError(f"'{key}' must be a mapping of package name to constraint"))
        return {}
    return {str(k): ("" if v is None else str(v)) for k, v in value.items()}


def _parse_all(texts: Mapping[str, str], requirer: str, errors: List[Exception]) -> Dict[str, Constraint]:
    parsed = {}
    for dep_name, text in texts.items():
        if text.strip() == INHERIT_MARKER:
            continue
        try:
            parsed[dep_name] = parse_constraint(text, requirer=f"{requirer} -> {dep_name}")
        except ConstraintParseError as exc:
            errors.append(exc)
    return parsed
