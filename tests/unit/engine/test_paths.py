"""Tests for element path resolution."""

import copy

import pytest

from fhir_conformance.engine.paths import (
    find_element,
    is_populated,
    iter_leaves,
    parse_path,
    resolve_element_from_path,
)
from fhir_conformance.utils.exceptions import ConfigurationError


@pytest.fixture
def two_participants():
    """Encounter whose participant array has two entries."""
    return {
        "resourceType": "Encounter",
        "id": "enc-2",
        "participant": [
            {"individual": {"reference": "Practitioner/a"}},
            {"individual": {"reference": "Practitioner/b"}},
        ],
    }


class TestResolve:
    """Any-match semantics across arrays."""

    def test_matches_second_array_element(self, two_participants):
        """A predicate satisfied only by the second participant still resolves."""
        assert resolve_element_from_path(
            two_participants,
            "participant.individual",
            lambda individual: individual["reference"] == "Practitioner/b",
        )

    def test_matches_first_array_element(self, two_participants):
        """The first participant alone is enough."""
        assert resolve_element_from_path(
            two_participants,
            "participant.individual.reference",
            lambda ref: ref == "Practitioner/a",
        )

    def test_no_element_satisfies(self, two_participants):
        """Resolution fails when no leaf satisfies the predicate."""
        assert not resolve_element_from_path(
            two_participants,
            "participant.individual.reference",
            lambda ref: ref == "Practitioner/c",
        )

    def test_missing_intermediate_is_not_an_error(self, two_participants):
        """Absent fields yield no leaves."""
        assert not resolve_element_from_path(two_participants, "hospitalization.admitSource")
        assert list(iter_leaves(two_participants, "hospitalization.admitSource")) == []

    def test_short_circuits_on_first_match(self, two_participants):
        """The predicate is not called after the first match."""
        seen = []

        def predicate(value):
            seen.append(value)
            return True

        resolve_element_from_path(two_participants, "participant.individual.reference", predicate)
        assert seen == ["Practitioner/a"]

    def test_terminal_array_is_broadcast(self):
        """Each element of a terminal array is a separate leaf."""
        resource = {"identifier": [{"value": "1"}, {"value": "2"}]}
        assert [leaf["value"] for leaf in iter_leaves(resource, "identifier")] == ["1", "2"]

    def test_nested_arrays(self, encounter):
        """Arrays at several levels are all broadcast."""
        assert resolve_element_from_path(
            encounter, "type.coding.code", lambda code: code == "185349003"
        )

    def test_index_selects_one_element(self, two_participants):
        """An index suffix restricts resolution to that element."""
        assert resolve_element_from_path(
            two_participants,
            "participant[1].individual.reference",
            lambda ref: ref == "Practitioner/b",
        )
        assert not resolve_element_from_path(
            two_participants,
            "participant[0].individual.reference",
            lambda ref: ref == "Practitioner/b",
        )
        assert not resolve_element_from_path(two_participants, "participant[5].individual")

    def test_scalar_before_path_end(self):
        """A scalar in the middle of the path yields nothing."""
        assert not resolve_element_from_path({"status": "finished"}, "status.code")

    def test_null_leaf_is_absent(self):
        """JSON null never reaches the predicate."""
        assert find_element({"status": None}, "status", lambda value: True) is None

    def test_false_leaf_can_match(self):
        """A boolean False leaf is a value, not an absence."""
        assert resolve_element_from_path({"active": False}, "active", lambda v: v is False)

    def test_does_not_mutate_resource(self, encounter):
        """Resolution leaves the resource untouched."""
        before = copy.deepcopy(encounter)
        list(iter_leaves(encounter, "participant.type.coding.code"))
        resolve_element_from_path(encounter, "location.location.reference")
        assert encounter == before


class TestParsePath:
    """Path descriptor validation."""

    def test_segments(self):
        """Names and indexes are split out."""
        assert parse_path("identifier[0].value") == (("identifier", 0), ("value", None))

    @pytest.mark.parametrize("path", ["", "a..b", "a.[0]", "a.b c", "1abc"])
    def test_malformed_paths_rejected(self, path):
        """Malformed paths fail fast."""
        with pytest.raises(ConfigurationError):
            parse_path(path)


class TestIsPopulated:
    """Default presence predicate."""

    @pytest.mark.parametrize("value", [None, "", [], {}])
    def test_empty_values(self, value):
        """Nulls and empty containers are not populated."""
        assert not is_populated(value)

    @pytest.mark.parametrize("value", ["x", 0, False, [1], {"a": 1}])
    def test_values(self, value):
        """Anything else is populated."""
        assert is_populated(value)
