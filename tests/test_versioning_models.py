"""Tests for semantic version parsing and ordering."""

import pytest

from common.errors import ConstraintParseError
from versioning.models import ResolutionStrategy, SemanticVersion, compare, parse_version


class TestParseVersion:
    """Tests for parse_version."""

    def test_parses_core_prerelease_and_build(self):
        """Ensure every component is captured."""
        v = parse_version("1.0.0-rc.1+build.5")
        assert (v.major, v.minor, v.patch) == (1, 0, 0)
        assert v.prerelease == ("rc", "1")
        assert v.build == ("build", "5")
        assert str(v) == "1.0.0-rc.1+build.5"

    def test_leading_v_is_accepted(self):
        """A leading 'v' is stripped."""
        assert parse_version("v2.3.4") == SemanticVersion(2, 3, 4)

    def test_luarocks_revision_becomes_patch(self):
        """LuaRocks '3.0-1' reads as 3.0.1."""
        assert parse_version("3.0-1") == SemanticVersion(3, 0, 1)

    @pytest.mark.parametrize("text", ["", "   ", "1.2", "1.2.x", "a.b.c", "01.2.3", "1.2.3-al!pha", "1.2.3-"])
    def test_rejects_malformed(self, text):
        """Malformed numeric segments, bad prerelease characters and empty input fail."""
        with pytest.raises(ConstraintParseError):
            parse_version(text)

    def test_error_names_offending_segment(self):
        """The offending segment is reported."""
        with pytest.raises(ConstraintParseError) as exc_info:
            parse_version("1.02.3")
        assert exc_info.value.offending == "02"

    def test_parse_error_is_value_error(self):
        """Callers catching ValueError keep working."""
        with pytest.raises(ValueError):
            parse_version("nope")


class TestOrdering:
    """Tests for semver precedence."""

    def test_prerelease_chain(self):
        """The canonical prerelease chain is strictly increasing."""
        chain = [parse_version(t) for t in (
            "1.0.0-alpha", "1.0.0-alpha.1", "1.0.0-alpha.beta", "1.0.0-beta",
            "1.0.0-beta.2", "1.0.0-beta.11", "1.0.0-rc.1", "1.0.0",
        )]
        for lower, higher in zip(chain, chain[1:]):
            assert lower < higher
        assert sorted(reversed(chain)) == chain

    def test_numeric_components_compare_numerically(self):
        """1.10.0 sorts above 1.9.0."""
        assert parse_version("1.10.0") > parse_version("1.9.0")

    def test_build_metadata_ignored(self):
        """Build metadata takes no part in ordering, equality or hashing."""
        a, b = parse_version("1.2.3+one"), parse_version("1.2.3+two")
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_compare_three_way(self):
        """compare returns -1, 0 or 1."""
        assert compare(parse_version("1.0.0"), parse_version("2.0.0")) == -1
        assert compare(parse_version("2.0.0"), parse_version("2.0.0+x")) == 0
        assert compare(parse_version("2.0.1"), parse_version("2.0.0")) == 1


class TestResolutionStrategy:
    """Tests for strategy parsing."""

    def test_parse_case_insensitive(self):
        """Names parse regardless of case."""
        assert ResolutionStrategy.parse("Lowest") is ResolutionStrategy.LOWEST
        assert ResolutionStrategy.parse(ResolutionStrategy.EXACT) is ResolutionStrategy.EXACT

    def test_parse_unknown(self):
        """Unknown names are rejected."""
        with pytest.raises(ValueError):
            ResolutionStrategy.parse("newest")
