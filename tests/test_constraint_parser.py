"""Tests for constraint parsing and the canonical constraint model."""

import pytest

from common.errors import ConstraintParseError
from versioning.constraint import EMPTY_CONSTRAINT_TEXT, Constraint, intersect_all
from versioning.models import parse_version
from versioning.parser import is_valid_constraint, parse_constraint


def v(text):
    return parse_version(text)


def admitted(constraint_text, versions):
    c = parse_constraint(constraint_text)
    return [t for t in versions if c.satisfies(v(t))]


class TestOperators:
    """Tests for the individual operator forms."""

    @pytest.mark.parametrize(
        "text,canonical",
        [
            ("^1.2.3", ">=1.2.3 <2.0.0"),
            ("^0.2.3", ">=0.2.3 <0.3.0"),
            ("^0.0.3", ">=0.0.3 <0.0.4"),
            ("^0", ">=0.0.0 <1.0.0"),
            ("^0.0", ">=0.0.0 <0.1.0"),
            ("~1.2.3", ">=1.2.3 <1.3.0"),
            ("~1.2", ">=1.2.0 <1.3.0"),
            ("~1", ">=1.0.0 <2.0.0"),
            ("~> 1.2", ">=1.2.0 <1.3.0"),
            ("~>1.2.3", ">=1.2.3 <1.2.4"),
            ("~> 2", ">=2.0.0 <3.0.0"),
            ("1.2.x", ">=1.2.0 <1.3.0"),
            ("1.X", ">=1.0.0 <2.0.0"),
            ("1", ">=1.0.0 <2.0.0"),
            ("1.2.3", "=1.2.3"),
            ("=1.2.3", "=1.2.3"),
            ("==1.2.3", "=1.2.3"),
            ("=1.2", ">=1.2.0 <1.3.0"),
            (">1.2", ">=1.3.0"),
            (">1.2.3", ">1.2.3"),
            ("<=1.2", "<1.3.0"),
            ("<=1.2.3", "<=1.2.3"),
            ("<2.0.0", "<2.0.0"),
            ("1.2.3 - 2.3", ">=1.2.3 <2.4.0"),
            ("1.2 - 2.3.4", ">=1.2.0 <=2.3.4"),
        ],
    )
    def test_canonical_forms(self, text, canonical):
        """Each form lowers to the expected interval."""
        assert str(parse_constraint(text)) == canonical

    @pytest.mark.parametrize("text", ["", "*", "x", "X", "latest", "x.x.x", None])
    def test_wildcards(self, text):
        """Wildcard spellings admit every release."""
        c = parse_constraint(text)
        assert c.is_wildcard
        assert str(c) == "*"
        assert c.satisfies(v("0.0.1")) and c.satisfies(v("99.0.0"))

    def test_luarocks_revision_in_constraint(self):
        """'>= 3.0-1' is read as >=3.0.1."""
        assert str(parse_constraint(">= 3.0-1")) == ">=3.0.1"

    def test_comma_and_whitespace_mean_and(self):
        """Commas and spaces both intersect terms."""
        assert parse_constraint(">=1.0.0, <2.0.0") == parse_constraint(">=1.0.0 <2.0.0")
        assert parse_constraint(">= 1.0.0 < 2.0.0") == parse_constraint(">=1.0.0 <2.0.0")

    def test_or_alternatives(self):
        """'||' unions alternatives."""
        c = parse_constraint("^1.0.0 || ^3.0.0")
        assert str(c) == ">=1.0.0 <2.0.0 || >=3.0.0 <4.0.0"
        assert c.satisfies(v("1.5.0"))
        assert not c.satisfies(v("2.5.0"))
        assert c.satisfies(v("3.0.0"))

    def test_raw_text_kept(self):
        """The declared text stays available for diagnostics."""
        c = parse_constraint("  ^1.2  ")
        assert c.raw == "^1.2"
        assert c.text == "^1.2"


class TestSatisfaction:
    """Tests for which versions a constraint admits."""

    def test_caret_range(self):
        """^1.2.0 stays within major 1."""
        assert admitted("^1.2.0", ["1.1.9", "1.2.0", "1.9.9", "2.0.0"]) == ["1.2.0", "1.9.9"]

    def test_hyphen_range_inclusive(self):
        """Both hyphen ends are inclusive for full versions."""
        assert admitted("1.0.0 - 2.0.0", ["0.9.9", "1.0.0", "2.0.0", "2.0.1"]) == ["1.0.0", "2.0.0"]

    def test_build_metadata_ignored(self):
        """A pinned version matches regardless of build metadata."""
        assert parse_constraint("=1.2.3").satisfies(v("1.2.3+linux"))


class TestPrereleaseGate:
    """Tests for prerelease admission."""

    def test_prerelease_needs_matching_bound(self):
        """Only prereleases on the same core triple as a prerelease bound qualify."""
        c = parse_constraint("^1.2.3-beta.1")
        assert c.admits_prerelease(v("1.2.3-beta.2"))
        assert not c.admits_prerelease(v("1.3.0-alpha"))
        assert c.satisfies(v("1.3.0-alpha"))

    def test_plain_range_rejects_prereleases(self):
        """Ranges without prerelease bounds never pick prereleases."""
        c = parse_constraint(">=1.0.0")
        assert not c.admits_prerelease(v("2.0.0-rc.1"))
        assert c.admits_prerelease(v("2.0.0"))


class TestRoundTrip:
    """Tests for canonical rendering."""

    @pytest.mark.parametrize(
        "text",
        ["^1.2.3", "~1.4", "1.2.3", ">1.0.0 <=2.0.0", "*", "^1.0.0 || ^2.0.0", "1.0.0-rc.1 - 2.0"],
    )
    def test_reparse_is_identity(self, text):
        """Parsing the canonical text yields an equal constraint."""
        c = parse_constraint(text)
        assert parse_constraint(str(c)) == c

    def test_empty_constraint_rendering(self):
        """An unsatisfiable constraint renders as the minimum-excluding range."""
        c = parse_constraint(">2.0.0 <1.0.0")
        assert c.is_empty
        assert str(c) == EMPTY_CONSTRAINT_TEXT
        reparsed = parse_constraint(str(c))
        for text in ("0.0.0", "1.0.0", "3.0.0"):
            assert not reparsed.satisfies(v(text))


class TestIntersection:
    """Tests for constraint intersection."""

    def test_overlapping(self):
        """Overlapping ranges narrow."""
        c = parse_constraint("^1.0.0").intersect(parse_constraint(">=1.4.0"))
        assert str(c) == ">=1.4.0 <2.0.0"

    def test_disjoint(self):
        """Disjoint ranges give the empty constraint."""
        assert parse_constraint("^1.0.0").intersect(parse_constraint("^2.0.0")).is_empty

    def test_exact_detection(self):
        """Intersections collapsing to one version are recognised."""
        c = parse_constraint(">=1.2.3").intersect(parse_constraint("<=1.2.3"))
        assert c.single_version() == v("1.2.3")
        assert parse_constraint("^1.2.3").single_version() is None

    def test_intersect_all(self):
        """intersect_all folds from the wildcard."""
        assert intersect_all([]) == Constraint.any()
        c = intersect_all(parse_constraint(t) for t in ("^1.0.0", ">=1.2.0", "<1.5.0"))
        assert str(c) == ">=1.2.0 <1.5.0"

    def test_exactly(self):
        """Constraint.exactly pins one version."""
        c = Constraint.exactly(v("2.1.0"))
        assert str(c) == "=2.1.0"
        assert c.single_version() == v("2.1.0")


class TestParseErrors:
    """Tests for rejected constraint text."""

    @pytest.mark.parametrize(
        "text,offending",
        [
            (">=1.2.x.y", "1.2.x.y"),
            ("^01.2.3", "01"),
            (">>1.0.0", ">>1.0.0"),
            ("^1.0.0 ||", "||"),
            ("1.2.3-alpha..1", "1.2.3-alpha..1"),
            (">x", ">x"),
            ("banana", "banana"),
            ("1.2-beta", "1.2-beta"),
        ],
    )
    def test_offending_substring_reported(self, text, offending):
        """Errors point at the part that could not be parsed."""
        with pytest.raises(ConstraintParseError) as exc_info:
            parse_constraint(text)
        assert exc_info.value.offending == offending
        assert exc_info.value.text == text

    def test_requirer_in_message(self):
        """The declaring package is named in the message."""
        with pytest.raises(ConstraintParseError) as exc_info:
            parse_constraint("^nope", requirer="app@1.0.0")
        assert exc_info.value.requirer == "app@1.0.0"
        assert "app@1.0.0" in str(exc_info.value)

    def test_is_valid_constraint(self):
        """is_valid_constraint mirrors parse success."""
        assert is_valid_constraint("^1.0.0")
        assert not is_valid_constraint("^^1")
