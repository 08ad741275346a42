"""HTTP transport for the server under test."""

from fhir_conformance.client.fhir_client import FHIRServerClient

__all__ = ["FHIRServerClient"]
