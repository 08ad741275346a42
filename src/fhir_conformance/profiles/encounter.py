"""US Core 3.1.0 Encounter rule-set."""

from fhir_conformance.profiles.base import build_rule_set

ENCOUNTER_PROFILE_URL = "http://hl7.org/fhir/us/core/StructureDefinition/us-core-encounter"

ENCOUNTER_STATUS_VALUES = (
    "planned",
    "arrived",
    "triaged",
    "in-progress",
    "onleave",
    "finished",
    "cancelled",
    "entered-in-error",
    "unknown",
)

US_CORE_ENCOUNTER = build_rule_set(
    {
        "resource_type": "Encounter",
        "profile_url": ENCOUNTER_PROFILE_URL,
        "search_params": [
            {"name": "_id", "path": "id"},
            {"name": "class", "path": "class.code"},
            {"name": "date", "path": "period", "mode": "date"},
            {"name": "identifier", "path": "identifier.value"},
            {
                "name": "patient",
                "path": "subject.reference",
                "mode": "reference",
                "target_type": "Patient",
            },
            {"name": "status", "path": "status"},
            {"name": "type", "path": "type.coding.code"},
        ],
        "bindings": [
            {
                "type": "code",
                "strength": "required",
                "system": "http://hl7.org/fhir/ValueSet/identifier-use",
                "path": "identifier.use",
            },
            {
                "type": "CodeableConcept",
                "strength": "extensible",
                "system": "http://hl7.org/fhir/ValueSet/identifier-type",
                "path": "identifier.type",
            },
            {
                "type": "code",
                "strength": "required",
                "system": "http://hl7.org/fhir/ValueSet/encounter-status",
                "path": "status",
            },
            {
                "type": "code",
                "strength": "required",
                "system": "http://hl7.org/fhir/ValueSet/encounter-status",
                "path": "statusHistory.status",
            },
            {
                "type": "Coding",
                "strength": "extensible",
                "system": "http://terminology.hl7.org/ValueSet/v3-ActEncounterCode",
                "path": "class",
            },
            {
                "type": "Coding",
                "strength": "extensible",
                "system": "http://terminology.hl7.org/ValueSet/v3-ActEncounterCode",
                "path": "classHistory.class",
            },
            {
                "type": "CodeableConcept",
                "strength": "extensible",
                "system": "http://hl7.org/fhir/us/core/ValueSet/us-core-encounter-type",
                "path": "type",
            },
            {
                "type": "CodeableConcept",
                "strength": "extensible",
                "system": "http://hl7.org/fhir/ValueSet/encounter-participant-type",
                "path": "participant.type",
            },
            {
                "type": "code",
                "strength": "required",
                "system": "http://hl7.org/fhir/ValueSet/encounter-location-status",
                "path": "location.status",
            },
        ],
        "must_supports": [
            {"path": "identifier"},
            {"path": "identifier.system"},
            {"path": "identifier.value"},
            {"path": "status"},
            {"path": "class"},
            {"path": "type"},
            {"path": "subject"},
            {"path": "participant"},
            {"path": "participant.type"},
            {"path": "participant.period"},
            {"path": "participant.individual"},
            {"path": "period"},
            {"path": "reasonCode"},
            {"path": "hospitalization"},
            {"path": "hospitalization.dischargeDisposition"},
            {"path": "location"},
            {"path": "location.location"},
        ],
        "status_values": ENCOUNTER_STATUS_VALUES,
        "search_combinations": [
            ("patient",),
            ("_id",),
            ("date", "patient"),
            ("identifier",),
            ("patient", "status"),
            ("class", "patient"),
            ("patient", "type"),
        ],
    }
)
