"""Test configuration for the FHIR conformance engine.

Collaborators are small in-process fakes that record the calls made to them;
terminology checks use the real local terminology service loaded with
fragments of the FHIR value sets the Encounter profile binds to.
"""

import copy
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytest

from fhir_conformance.engine.collaborators import ReadReply, SearchReply
from fhir_conformance.terminology.service import LocalTerminologyService

ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
ENCOUNTER_STATUS_SYSTEM = "http://hl7.org/fhir/encounter-status"
IDENTIFIER_USE_SYSTEM = "http://hl7.org/fhir/identifier-use"
SNOMED = "http://snomed.info/sct"


def searchset(resources: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Wrap resources in a searchset Bundle."""
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [{"resource": resource} for resource in resources],
    }


def ok_reply(resources: List[Dict[str, Any]]) -> SearchReply:
    """Successful search reply carrying ``resources``."""
    return SearchReply(status_code=200, body=searchset(resources), resources=resources)


def rejected_reply(body: Optional[Dict[str, Any]] = None) -> SearchReply:
    """400 reply, with an OperationOutcome unless another body is given."""
    if body is None:
        body = {
            "resourceType": "OperationOutcome",
            "issue": [{"severity": "error", "code": "required"}],
        }
    return SearchReply(status_code=400, body=body)


class FakeSearchExecutor:
    """Search collaborator answering from a handler function."""

    def __init__(self, handler: Callable[[str, Dict[str, str]], SearchReply]):
        """Initialize with the function that produces replies."""
        self.handler = handler
        self.calls: List[Dict[str, str]] = []

    def search(self, resource_type: str, params: Mapping[str, str]) -> SearchReply:
        """Record the call and answer it."""
        self.calls.append(dict(params))
        return self.handler(resource_type, dict(params))


class FakeReader:
    """Read collaborator over an in-memory store."""

    def __init__(self, resources: Optional[List[Dict[str, Any]]] = None):
        """Initialize with the resources the server holds."""
        self.store = {
            f"{r['resourceType']}/{r['id']}": r for r in (resources or [])
        }
        self.calls: List[str] = []

    def read(self, resource_type: str, resource_id: str) -> ReadReply:
        """Record the call and return the stored resource or a 404."""
        key = f"{resource_type}/{resource_id}"
        self.calls.append(key)
        if key not in self.store:
            return ReadReply(status_code=404)
        return ReadReply(status_code=200, resource=copy.deepcopy(self.store[key]))


def _value_set(url: str, system: str, codes: List[str]) -> Dict[str, Any]:
    return {
        "resourceType": "ValueSet",
        "url": url,
        "compose": {
            "include": [{"system": system, "concept": [{"code": c} for c in codes]}]
        },
    }


@pytest.fixture
def terminology_resources() -> List[Dict[str, Any]]:
    """ValueSets and CodeSystems used by the Encounter bindings."""
    return [
        _value_set(
            "http://hl7.org/fhir/ValueSet/encounter-status",
            ENCOUNTER_STATUS_SYSTEM,
            [
                "planned",
                "arrived",
                "triaged",
                "in-progress",
                "onleave",
                "finished",
                "cancelled",
                "entered-in-error",
                "unknown",
            ],
        ),
        _value_set(
            "http://hl7.org/fhir/ValueSet/identifier-use",
            IDENTIFIER_USE_SYSTEM,
            ["usual", "official", "temp", "secondary", "old"],
        ),
        _value_set(
            "http://hl7.org/fhir/ValueSet/encounter-location-status",
            "http://hl7.org/fhir/encounter-location-status",
            ["planned", "active", "reserved", "completed"],
        ),
        _value_set(
            "http://terminology.hl7.org/ValueSet/v3-ActEncounterCode",
            ACT_CODE_SYSTEM,
            ["AMB", "EMER", "FLD", "HH", "IMP", "ACUTE", "NONAC", "OBSENC", "PRENC", "SS", "VR"],
        ),
        {
            "resourceType": "CodeSystem",
            "url": ACT_CODE_SYSTEM,
            "content": "fragment",
            "concept": [
                {"code": "_ActEncounterCode", "concept": [{"code": "AMB"}, {"code": "EMER"}]},
                {"code": "AMB"},
                {"code": "EMER"},
                {"code": "IMP"},
                {"code": "PRENC"},
                {"code": "SS"},
                {"code": "VR"},
                {"code": "_ActCodeProcessStep"},
            ],
        },
        _value_set(
            "http://hl7.org/fhir/us/core/ValueSet/us-core-encounter-type",
            SNOMED,
            ["185349003", "270427003", "390906007"],
        ),
        {
            "resourceType": "CodeSystem",
            "url": SNOMED,
            "content": "fragment",
            "concept": [
                {"code": "185349003"},
                {"code": "270427003"},
                {"code": "390906007"},
                {"code": "439740005"},
            ],
        },
    ]


@pytest.fixture
def terminology(terminology_resources) -> LocalTerminologyService:
    """Local terminology service loaded with Encounter terminology."""
    service = LocalTerminologyService()
    for resource in terminology_resources:
        service.load_resource(resource)
    return service


@pytest.fixture
def encounter() -> Dict[str, Any]:
    """A US Core Encounter populating every must-support element."""
    return {
        "resourceType": "Encounter",
        "id": "enc-1",
        "identifier": [
            {
                "use": "usual",
                "system": "http://hospital.example.org/encounters",
                "value": "V-1001",
            }
        ],
        "status": "finished",
        "class": {"system": ACT_CODE_SYSTEM, "code": "AMB", "display": "ambulatory"},
        "type": [
            {
                "coding": [
                    {"system": SNOMED, "code": "185349003", "display": "Encounter for check up"}
                ]
            }
        ],
        "subject": {"reference": "Patient/pat-1"},
        "participant": [
            {
                "type": [
                    {
                        "coding": [
                            {
                                "system": "http://terminology.hl7.org/CodeSystem/v3-ParticipationType",
                                "code": "PPRF",
                            }
                        ]
                    }
                ],
                "period": {"start": "2020-03-01T09:00:00Z"},
                "individual": {"reference": "Practitioner/prac-1"},
            }
        ],
        "period": {"start": "2020-03-01T09:00:00Z", "end": "2020-03-01T10:00:00Z"},
        "reasonCode": [{"coding": [{"system": SNOMED, "code": "439740005"}]}],
        "hospitalization": {
            "dischargeDisposition": {
                "coding": [
                    {
                        "system": "http://terminology.hl7.org/CodeSystem/discharge-disposition",
                        "code": "home",
                    }
                ]
            }
        },
        "location": [{"location": {"reference": "Location/loc-1"}, "status": "completed"}],
    }
