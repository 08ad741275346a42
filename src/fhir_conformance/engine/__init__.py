"""Conformance validation engine.

Generic algorithms that judge a server's resources against a profile:
search-filter matching, status sweeps, terminology bindings, must-support
coverage and reference resolution.
"""

from fhir_conformance.engine.absence import (
    AbsenceMarkerChecker,
    DataAbsentObservation,
    DataAbsentReasonChecker,
)
from fhir_conformance.engine.bindings import (
    BindingDefinition,
    BindingStrength,
    BindingValidator,
    ElementType,
)
from fhir_conformance.engine.capabilities import ServerCapabilities
from fhir_conformance.engine.collaborators import (
    ReadReply,
    ResourceReference,
    SearchReply,
    StaticSessionState,
)
from fhir_conformance.engine.must_support import MustSupportElement, MustSupportTracker
from fhir_conformance.engine.outcomes import OutcomeStatus, ValidationOutcome, worst_status
from fhir_conformance.engine.paths import find_element, resolve_element_from_path
from fhir_conformance.engine.references import ReferenceResolver
from fhir_conformance.engine.search import (
    ComparisonMode,
    SearchParamMatcher,
    SearchParamSpec,
    split_search_values,
)
from fhir_conformance.engine.sweep import StatusSweepSearcher, SweepResult

__all__ = [
    "AbsenceMarkerChecker",
    "BindingDefinition",
    "BindingStrength",
    "BindingValidator",
    "ComparisonMode",
    "DataAbsentObservation",
    "DataAbsentReasonChecker",
    "ElementType",
    "MustSupportElement",
    "MustSupportTracker",
    "OutcomeStatus",
    "ReadReply",
    "ReferenceResolver",
    "ResourceReference",
    "SearchParamMatcher",
    "SearchParamSpec",
    "SearchReply",
    "ServerCapabilities",
    "StaticSessionState",
    "StatusSweepSearcher",
    "SweepResult",
    "ValidationOutcome",
    "find_element",
    "resolve_element_from_path",
    "split_search_values",
    "worst_status",
]
