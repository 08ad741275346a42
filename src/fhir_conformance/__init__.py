"""FHIR profile conformance engine."""

__version__ = "0.1.0"
