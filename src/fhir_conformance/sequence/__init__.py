"""Profile sequences: ordered conformance checks for one resource type."""

from fhir_conformance.sequence.context import RunContext, SequenceResult
from fhir_conformance.sequence.factory import create_sequence
from fhir_conformance.sequence.runner import CHECK_ORDER, ProfileSequence

__all__ = [
    "CHECK_ORDER",
    "ProfileSequence",
    "RunContext",
    "SequenceResult",
    "create_sequence",
]
