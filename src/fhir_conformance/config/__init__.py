"""Configuration module for the FHIR conformance engine."""

from fhir_conformance.config.base import Settings
from fhir_conformance.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
