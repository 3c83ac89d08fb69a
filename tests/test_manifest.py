"""Tests for package manifest loading."""

import pytest
import yaml

from common.errors import ConstraintParseError, ManifestError
from constants import DependencyKind
from manifest import INHERIT_MARKER, Manifest
from resolver.models import PackageId
from versioning.parser import parse_constraint


def write_manifest(directory, data):
    path = directory / "package.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestManifestLoad:
    """Tests for reading package.yaml."""

    def test_load_directory(self, tmp_path):
        """A directory resolves to its package.yaml."""
        write_manifest(tmp_path, {
            "name": "app",
            "version": "0.3.0",
            "dependencies": {"penlight": "^1.13"},
            "dev_dependencies": {"busted": "~2.1"},
        })
        manifest = Manifest.load(str(tmp_path))
        assert manifest.name == "app"
        assert manifest.version == "0.3.0"
        assert manifest.dependencies == {"penlight": "^1.13"}
        assert manifest.constraints["penlight"] == parse_constraint("^1.13")
        assert manifest.dev_constraints["busted"] == parse_constraint("~2.1")
        assert manifest.package_id == PackageId("app")

    def test_missing_file(self, tmp_path):
        """A missing manifest is a ManifestError naming the path."""
        with pytest.raises(ManifestError) as exc_info:
            Manifest.load(str(tmp_path / "nowhere" / "package.yaml"))
        assert "nowhere" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        """YAML syntax errors are wrapped."""
        (tmp_path / "package.yaml").write_text("name: [unclosed\n", encoding="utf-8")
        with pytest.raises(ManifestError):
            Manifest.load(str(tmp_path))

    def test_all_errors_reported(self):
        """Every bad constraint and the missing name are reported together."""
        with pytest.raises(ManifestError) as exc_info:
            Manifest.from_dict({
                "dependencies": {"a": "^^1", "b": "^1.0.0", "c": ">=x.y"},
                "dev_dependencies": {"d": "1.2-beta"},
            })
        errors = exc_info.value.errors
        assert len(errors) == 4
        assert sum(isinstance(e, ConstraintParseError) for e in errors) == 3
        assert "4 problem(s)" in str(exc_info.value)

    def test_not_a_mapping(self):
        """Top-level lists are rejected."""
        with pytest.raises(ManifestError):
            Manifest.from_dict(["name", "app"])

    def test_null_constraint_means_any(self):
        """A dependency with no constraint accepts any version."""
        manifest = Manifest.from_dict({"name": "app", "dependencies": {"lpeg": None}})
        assert manifest.constraints["lpeg"].is_wildcard


class TestManifestEdges:
    """Tests for the edges a manifest declares."""

    def test_runtime_then_dev(self):
        """Runtime edges come before dev edges and carry their kind."""
        manifest = Manifest.from_dict({
            "name": "app",
            "dependencies": {"a": "^1.0.0"},
            "dev_dependencies": {"busted": "^2.0.0"},
        })
        edges = manifest.edges()
        assert [(e.target, e.kind) for e in edges] == [
            ("a", DependencyKind.RUNTIME),
            ("busted", DependencyKind.DEV),
        ]
        assert all(e.requirer == PackageId("app") for e in edges)
        assert [e.target for e in manifest.edges(include_dev=False)] == ["a"]

    def test_inherited_constraint(self):
        """The inherit marker takes the workspace-level constraint."""
        manifest = Manifest.from_dict({"name": "app", "dependencies": {"lpeg": INHERIT_MARKER}})
        assert manifest.inherited_names() == ["lpeg"]
        (edge,) = manifest.edges(shared={"lpeg": parse_constraint("^1.1.0")})
        assert str(edge.constraint) == ">=1.1.0 <2.0.0"

    def test_inherit_without_workspace_declaration(self):
        """Inheriting an undeclared constraint fails."""
        manifest = Manifest.from_dict({"name": "app", "dev_dependencies": {"busted": "workspace"}})
        with pytest.raises(ManifestError) as exc_info:
            manifest.edges(shared={"busted": parse_constraint("^2.0.0")})
        assert "busted" in str(exc_info.value)
