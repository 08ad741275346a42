"""FHIR conformance engine test suite."""
