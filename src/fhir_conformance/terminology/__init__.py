"""Terminology lookup backed by local FHIR terminology resources."""

from fhir_conformance.terminology.service import (
    CodeSystem,
    LocalTerminologyService,
    ValueSet,
)

__all__ = ["CodeSystem", "LocalTerminologyService", "ValueSet"]
