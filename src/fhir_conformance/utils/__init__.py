"""Shared utilities for the FHIR conformance engine."""
