"""Tests for the in-memory package source and index parsing."""

import json

import pytest

from common.errors import FetchError, PackageNotFoundError
from source.base import parse_index
from source.memory import InMemoryPackageSource


class TestInMemoryPackageSource:
    """Tests for publishing, listing and fetching."""

    def test_list_and_fetch(self):
        """Versions list sorted and every fetch is logged."""
        source = InMemoryPackageSource()
        source.add("lpeg", "1.1.0", content=b"new")
        source.add("lpeg", "1.0.2", {"lua": ">=5.1"}, content=b"old")
        published = source.list_versions("lpeg")
        assert [str(p.version) for p in published] == ["1.0.2", "1.1.0"]
        assert published[0].metadata["dependencies"] == {"lua": ">=5.1"}
        assert source.fetch("lpeg", "1.0.2") == b"old"
        assert source.fetch_log == [("lpeg", "1.0.2")]

    def test_unknown(self):
        """Unknown packages and versions raise PackageNotFoundError."""
        source = InMemoryPackageSource()
        source.add("lpeg", "1.0.0")
        with pytest.raises(PackageNotFoundError):
            source.list_versions("ghost")
        with pytest.raises(PackageNotFoundError):
            source.fetch("lpeg", "9.9.9")

    def test_mirror_round_trip(self, tmp_path):
        """A mirror written to disk loads back with the same content."""
        source = InMemoryPackageSource()
        source.add("lua-cjson", "2.1.0", {"lua": ">=5.1"}, content=b"\x1f\x8bbinary")
        source.add("lua-cjson", "2.1.1")
        source.write_directory(str(tmp_path))

        loaded = InMemoryPackageSource.from_directory(str(tmp_path))
        assert loaded.names() == ["lua-cjson"]
        assert [str(p.version) for p in loaded.list_versions("lua-cjson")] == ["2.1.0", "2.1.1"]
        assert loaded.fetch("lua-cjson", "2.1.0") == b"\x1f\x8bbinary"
        assert loaded.list_versions("lua-cjson")[0].metadata["dependencies"] == {"lua": ">=5.1"}

    def test_mirror_version_without_archive(self, tmp_path):
        """A version listed in the index but lacking an archive cannot be fetched."""
        (tmp_path / "libA").mkdir()
        (tmp_path / "libA" / "index.json").write_text(
            '{"name": "libA", "versions": {"1.0.0": {}}}', encoding="utf-8"
        )
        loaded = InMemoryPackageSource.from_directory(str(tmp_path))
        assert [str(p.version) for p in loaded.list_versions("libA")] == ["1.0.0"]
        with pytest.raises(PackageNotFoundError) as exc_info:
            loaded.fetch("libA", "1.0.0")
        assert "no archive" in str(exc_info.value)

        out = tmp_path / "copy"
        loaded.write_directory(str(out))
        assert not (out / "libA" / "1.0.0").exists()

    def test_mirror_errors(self, tmp_path):
        """Missing mirrors and corrupt indexes are fetch errors."""
        with pytest.raises(FetchError):
            InMemoryPackageSource.from_directory(str(tmp_path / "absent"))
        (tmp_path / "bad").mkdir()
        (tmp_path / "bad" / "index.json").write_text("{", encoding="utf-8")
        with pytest.raises(FetchError):
            InMemoryPackageSource.from_directory(str(tmp_path))


class TestParseIndex:
    """Tests for registry index documents."""

    def test_skips_unparseable_versions(self):
        """Bad version keys are ignored."""
        published = parse_index("x", json.loads('{"versions": {"1.0.0": null, "scm-1": {}}}'))
        assert [str(p.version) for p in published] == ["1.0.0"]
        assert published[0].metadata == {}

    def test_requires_versions_mapping(self):
        """Documents without a versions mapping are rejected."""
        with pytest.raises(FetchError):
            parse_index("x", {"versions": []})
