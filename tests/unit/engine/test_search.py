"""Tests for search parameter matching."""

import pytest
from pydantic import ValidationError

from fhir_conformance.engine.search import (
    ComparisonMode,
    SearchParamMatcher,
    SearchParamSpec,
    split_search_values,
)
from fhir_conformance.profiles.encounter import US_CORE_ENCOUNTER
from fhir_conformance.utils.exceptions import AssertionFailure, ConfigurationError


@pytest.fixture
def matcher():
    """Matcher with the Encounter search parameters."""
    return SearchParamMatcher(US_CORE_ENCOUNTER.search_params)


class TestSplitSearchValues:
    """Comma lists with backslash escapes."""

    def test_escaped_comma_is_literal(self):
        """``a\\,b,c`` splits into two values."""
        assert split_search_values("a\\,b,c") == ["a,b", "c"]

    def test_single_value(self):
        """A value without commas is a one-element list."""
        assert split_search_values("finished") == ["finished"]

    def test_plain_list(self):
        """Unescaped commas separate values."""
        assert split_search_values("planned,arrived,finished") == [
            "planned",
            "arrived",
            "finished",
        ]


class TestTokenParams:
    """List-valued parameters."""

    def test_status_in_list(self, matcher, encounter):
        """A status among the requested ones matches."""
        assert matcher.matches(encounter, "status", "planned,finished")

    def test_status_not_in_list(self, matcher, encounter):
        """A status outside the requested ones is rejected."""
        assert not matcher.matches(encounter, "status", "planned,arrived")

    def test_id(self, matcher, encounter):
        """_id compares against the logical id."""
        assert matcher.matches(encounter, "_id", "enc-1")
        assert not matcher.matches(encounter, "_id", "enc-2")

    def test_class_code(self, matcher, encounter):
        """class compares against class.code."""
        assert matcher.matches(encounter, "class", "AMB")
        assert not matcher.matches(encounter, "class", "EMER")

    def test_type_code_in_nested_codings(self, matcher, encounter):
        """type searches every coding of every type."""
        assert matcher.matches(encounter, "type", "999,185349003")

    def test_identifier_with_escaped_comma(self, matcher, encounter):
        """An identifier value containing a comma is matched whole."""
        encounter["identifier"].append({"value": "A,B"})
        assert matcher.matches(encounter, "identifier", "A\\,B")
        assert not matcher.matches(encounter, "identifier", "A")

    def test_absent_field_rejected(self, matcher, encounter):
        """A resource without the searched field does not match."""
        del encounter["identifier"]
        assert not matcher.matches(encounter, "identifier", "V-1001")


class TestReferenceParams:
    """Reference-valued parameters."""

    def test_bare_id(self, matcher, encounter):
        """A bare patient id matches ``Patient/id``."""
        assert matcher.matches(encounter, "patient", "pat-1")

    def test_qualified_id(self, matcher, encounter):
        """``Patient/id`` matches too."""
        assert matcher.matches(encounter, "patient", "Patient/pat-1")

    def test_bare_reference_on_resource(self, matcher, encounter):
        """A resource referencing the bare id still matches."""
        encounter["subject"]["reference"] = "pat-1"
        assert matcher.matches(encounter, "patient", "Patient/pat-1")

    def test_other_patient_rejected(self, matcher, encounter):
        """A different patient is rejected."""
        assert not matcher.matches(encounter, "patient", "pat-2")

    def test_absent_subject_rejected(self, matcher, encounter):
        """A resource with no subject is rejected."""
        del encounter["subject"]
        assert not matcher.matches(encounter, "patient", "pat-1")


class TestDateParams:
    """Date-valued parameters against the period."""

    def test_day_contains_period(self, matcher, encounter):
        """A period inside the searched day matches eq."""
        assert matcher.matches(encounter, "date", "2020-03-01")

    def test_other_day_rejected(self, matcher, encounter):
        """A period outside the searched day does not."""
        assert not matcher.matches(encounter, "date", "2020-03-02")

    def test_prefix(self, matcher, encounter):
        """Prefixes compare instead of requiring equality."""
        assert matcher.matches(encounter, "date", "gt2020-02-01")
        assert not matcher.matches(encounter, "date", "gt2020-04-01")

    def test_period_straddling_boundary(self, matcher, encounter):
        """A period that overlaps the searched day matches eq and ge."""
        encounter["period"] = {"start": "2020-02-29T23:00:00Z", "end": "2020-03-01T01:00:00Z"}
        assert matcher.matches(encounter, "date", "ge2020-03-01")
        assert matcher.matches(encounter, "date", "eq2020-03-01")
        assert matcher.matches(encounter, "date", "le2020-02-29")

    def test_absent_period_rejected(self, matcher, encounter):
        """No period means no match."""
        del encounter["period"]
        assert not matcher.matches(encounter, "date", "2020-03-01")


class TestAssertions:
    """Hard failures for resources that ignore the filter."""

    def test_assert_matches_raises(self, matcher, encounter):
        """A mismatch raises AssertionFailure naming the parameter."""
        with pytest.raises(AssertionFailure, match="status on resource does not match"):
            matcher.assert_matches(encounter, "status", "planned")

    def test_assert_matches_params_checks_all(self, matcher, encounter):
        """Every supported parameter is checked; unknown ones are ignored."""
        matcher.assert_matches_params(
            encounter, {"patient": "pat-1", "status": "finished", "_count": "10"}
        )
        with pytest.raises(AssertionFailure):
            matcher.assert_matches_params(encounter, {"patient": "pat-1", "class": "EMER"})

    def test_undefined_parameter(self, matcher, encounter):
        """Matching an undefined parameter is a configuration error."""
        with pytest.raises(ConfigurationError):
            matcher.matches(encounter, "location", "Location/1")


class TestSearchParamSpec:
    """Spec records are validated when built."""

    def test_malformed_path(self):
        """A malformed path fails at construction."""
        with pytest.raises(ValidationError):
            SearchParamSpec(name="bad", path="subject..reference")

    def test_unknown_mode(self):
        """An unknown comparison mode fails at construction."""
        with pytest.raises(ValidationError):
            SearchParamSpec(name="bad", path="status", mode="fuzzy")

    def test_frozen(self):
        """Specs cannot be changed after construction."""
        spec = SearchParamSpec(name="status", path="status", mode=ComparisonMode.TOKEN)
        with pytest.raises(ValidationError):
            spec.path = "other"
