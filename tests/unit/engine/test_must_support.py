"""Tests for must-support coverage."""

import pytest
from pydantic import ValidationError

from fhir_conformance.engine.absence import DATA_ABSENT_REASON_EXTENSION
from fhir_conformance.engine.must_support import MustSupportElement, MustSupportTracker
from fhir_conformance.engine.outcomes import OutcomeStatus
from fhir_conformance.profiles.encounter import US_CORE_ENCOUNTER


@pytest.fixture
def tracker():
    """Tracker for two elements."""
    return MustSupportTracker(
        [MustSupportElement(path="reasonCode"), MustSupportElement(path="hospitalization")]
    )


class TestCoverage:
    """Coverage across the collection."""

    def test_element_from_any_resource_counts(self, tracker):
        """Only the element no resource provides is missing."""
        resources = [
            {"resourceType": "Encounter", "id": "1"},
            {"resourceType": "Encounter", "id": "2", "reasonCode": [{"text": "check up"}]},
        ]
        missing = tracker.missing_elements(resources)
        assert [element.path for element in missing] == ["hospitalization"]

        outcome = tracker.check(resources, "Encounter")
        assert outcome.status == OutcomeStatus.SKIP
        assert outcome.message == (
            "Could not find hospitalization in the 2 provided Encounter resource(s)"
        )
        assert outcome.details["missing"] == ["hospitalization"]

    def test_all_covered_passes(self, encounter):
        """An Encounter populating everything passes the Encounter profile."""
        tracker = MustSupportTracker(US_CORE_ENCOUNTER.must_supports)
        assert tracker.missing_elements([encounter]) == []
        assert tracker.check([encounter], "Encounter").status == OutcomeStatus.PASS

    def test_empty_collection_misses_everything(self, tracker):
        """Nothing is covered by no resources."""
        assert len(tracker.missing_elements([])) == 2

    def test_nested_element_in_any_array_entry(self, encounter):
        """A nested element in the second participant counts."""
        tracker = MustSupportTracker([MustSupportElement(path="participant.period")])
        encounter["participant"] = [
            {"individual": {"reference": "Practitioner/a"}},
            {"period": {"start": "2020-01-01"}},
        ]
        assert tracker.missing_elements([encounter]) == []

    def test_empty_values_do_not_count(self, tracker):
        """Empty containers are not populated."""
        resource = {"resourceType": "Encounter", "reasonCode": [], "hospitalization": {}}
        assert len(tracker.missing_elements([resource])) == 2

    def test_absence_marker_does_not_count(self):
        """An element that only records its absence is not provided."""
        tracker = MustSupportTracker([MustSupportElement(path="hospitalization")])
        resource = {
            "resourceType": "Encounter",
            "hospitalization": {
                "extension": [{"url": DATA_ABSENT_REASON_EXTENSION, "valueCode": "unknown"}]
            },
        }
        assert len(tracker.missing_elements([resource])) == 1


class TestFixedValues:
    """Elements that must carry a particular value."""

    def test_fixed_value_must_match(self):
        """Only the fixed value satisfies the element."""
        element = MustSupportElement(path="identifier.use", fixed_value="official")
        tracker = MustSupportTracker([element])

        usual = {"identifier": [{"use": "usual"}]}
        official = {"identifier": [{"use": "usual"}, {"use": "official"}]}
        assert not tracker.is_satisfied(element, usual)
        assert tracker.is_satisfied(element, official)

    def test_label_includes_value(self):
        """Reports name the fixed value."""
        element = MustSupportElement(path="identifier.use", fixed_value="official")
        assert element.label == "identifier.use: official"

    def test_malformed_path(self):
        """Malformed paths fail at construction."""
        with pytest.raises(ValidationError):
            MustSupportElement(path="identifier..use")
