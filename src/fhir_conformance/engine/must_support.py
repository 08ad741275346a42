"""Must-support coverage across a resource collection.

A server must be able to populate each must-support element, not populate it
in every instance. An element counts as covered when any resource in the
collection has it; elements covered by no resource are reported as missing
and the check is skipped rather than failed.
"""

from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from fhir_conformance.engine.absence import AbsenceMarkerChecker, DataAbsentReasonChecker
from fhir_conformance.engine.outcomes import ValidationOutcome
from fhir_conformance.engine.paths import is_populated, parse_path, resolve_element_from_path
from fhir_conformance.utils.exceptions import ConfigurationError
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)


class MustSupportElement(BaseModel):
    """An element path, optionally with the value it must carry."""

    model_config = ConfigDict(frozen=True)

    path: str
    fixed_value: Optional[Any] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject malformed element paths at load time."""
        try:
            parse_path(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e
        return v

    @property
    def label(self) -> str:
        """Name used in reports."""
        if self.fixed_value is None:
            return self.path
        return f"{self.path}: {self.fixed_value}"


class MustSupportTracker:
    """Find must-support elements no resource in a collection provides."""

    def __init__(
        self,
        elements: Sequence[MustSupportElement],
        absence_checker: Optional[AbsenceMarkerChecker] = None,
    ):
        """Initialize tracker.

        Args:
            elements: Must-support elements of the profile
            absence_checker: Leaves it recognises do not count as populated
        """
        self.elements = list(elements)
        self.absence_checker = absence_checker or DataAbsentReasonChecker()

    def is_satisfied(self, element: MustSupportElement, resource: Dict[str, Any]) -> bool:
        """Whether ``resource`` provides ``element``."""

        def provides(value: Any) -> bool:
            if not is_populated(value) or self.absence_checker.is_absent(value):
                return False
            return element.fixed_value is None or value == element.fixed_value

        return resolve_element_from_path(resource, element.path, provides)

    def missing_elements(
        self, resources: Sequence[Dict[str, Any]]
    ) -> List[MustSupportElement]:
        """Elements provided by no resource in ``resources``."""
        return [
            element
            for element in self.elements
            if not any(self.is_satisfied(element, resource) for resource in resources)
        ]

    def check(
        self,
        resources: Sequence[Dict[str, Any]],
        resource_type: str,
        check: str = "must_support",
    ) -> ValidationOutcome:
        """Report one outcome for must-support coverage."""
        missing = self.missing_elements(resources)
        if missing:
            labels = ", ".join(element.label for element in missing)
            logger.info("must_support_missing", resource_type=resource_type, missing=labels)
            outcome = ValidationOutcome.skipped(
                check,
                f"Could not find {labels} in the {len(resources)} provided "
                f"{resource_type} resource(s)",
            )
            outcome.details["missing"] = [element.label for element in missing]
            return outcome
        return ValidationOutcome.passed(
            check, f"All must support elements found in {resource_type} resources"
        )
