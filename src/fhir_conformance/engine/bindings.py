"""Terminology binding validation over a resource collection.

Required bindings must be honoured by every coded value. Extensible bindings
first try value set membership; values outside the value set are re-checked
with the value set dropped, only asking whether each coding belongs to the
system it names. Extensible findings are warnings either way, and the message
says whether the fallback accepted the code. Terminology content that is not
available to the validator is reported as a warning naming the missing value
set or code system.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from pydantic import BaseModel, ConfigDict, field_validator

from fhir_conformance.engine.absence import AbsenceMarkerChecker, DataAbsentReasonChecker
from fhir_conformance.engine.collaborators import TerminologyLookup
from fhir_conformance.engine.outcomes import ValidationOutcome
from fhir_conformance.engine.paths import find_element, parse_path
from fhir_conformance.utils.exceptions import ConfigurationError, TerminologyError
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)


class BindingStrength(str, Enum):
    """Binding strengths the validator enforces."""

    REQUIRED = "required"
    EXTENSIBLE = "extensible"


class ElementType(str, Enum):
    """Data types that carry codes."""

    CODE = "code"
    CODING = "Coding"
    CODEABLE_CONCEPT = "CodeableConcept"
    QUANTITY = "Quantity"


class BindingDefinition(BaseModel):
    """A terminology binding on one element path.

    ``system`` is the bound value set URL. A definition without one checks
    codes against their own code systems only.
    """

    model_config = ConfigDict(frozen=True)

    type: ElementType
    strength: BindingStrength
    path: str
    system: Optional[str] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject malformed element paths at load time."""
        try:
            parse_path(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e
        return v

    def without_valueset(self) -> "BindingDefinition":
        """Same binding, checked against code systems only."""
        return self.model_copy(update={"system": None})


@dataclass(frozen=True)
class InvalidBinding:
    """A resource holding a coded value outside its binding."""

    resource: Dict[str, Any]
    element: Any
    binding: BindingDefinition

    @property
    def resource_label(self) -> str:
        """``Type/id`` of the offending resource."""
        return f"{self.resource.get('resourceType')}/{self.resource.get('id')}"

    def message(self) -> str:
        """Readable description of the violation."""
        target = self.binding.system or "its specified CodeSystem"
        return (
            f"Element {self.binding.path} on {self.resource_label} with code "
            f"{describe_code(self.element)} is not in {target}"
        )


def describe_code(element: Any) -> str:
    """Render a coded element as ``system|code`` text."""
    if isinstance(element, dict):
        if "coding" in element:
            return " or ".join(
                f"`{coding.get('system')}|{coding.get('code')}`"
                for coding in element.get("coding") or []
            ) or "`(no coding)`"
        return f"`{element.get('system')}|{element.get('code')}`"
    return f"`{element}`"


@dataclass
class BindingReport:
    """Violations found across all bindings."""

    failures: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    invalid_resources: Set[str] = field(default_factory=set)

    def outcome(self, check: str) -> ValidationOutcome:
        """Fail on required violations, warn on everything else."""
        if self.failures:
            message = (
                f"{len(self.failures)} invalid required binding(s) found in "
                f"{len(self.invalid_resources)} resources: {'. '.join(self.failures)}"
            )
            return ValidationOutcome.failed(check, message, self.warnings)
        return ValidationOutcome.passed(check, "All bindings valid", self.warnings)


class BindingValidator:
    """Check coded values in a collection against their bindings."""

    def __init__(
        self,
        terminology: TerminologyLookup,
        bindings: Sequence[BindingDefinition],
        absence_checker: Optional[AbsenceMarkerChecker] = None,
    ):
        """Initialize validator.

        Args:
            terminology: Terminology lookup collaborator
            bindings: Bindings of the profile
            absence_checker: Recognises leaves that only record absent data
        """
        self.terminology = terminology
        self.bindings = list(bindings)
        self.absence_checker = absence_checker or DataAbsentReasonChecker()

    def invalid_bindings(
        self, binding: BindingDefinition, resources: Iterable[Dict[str, Any]]
    ) -> List[InvalidBinding]:
        """Resources with a value at the binding path that violates it.

        Raises:
            TerminologyError: If the value set or a code system is unknown
        """
        invalid = []
        for resource in resources:
            element = find_element(
                resource, binding.path, lambda leaf: self._is_invalid(binding, leaf)
            )
            if element is not None:
                invalid.append(InvalidBinding(resource, element, binding))
        return invalid

    def validate(self, resources: Sequence[Dict[str, Any]]) -> BindingReport:
        """Check every binding across ``resources``."""
        report = BindingReport()

        for binding in self.bindings:
            if binding.strength != BindingStrength.REQUIRED:
                continue
            try:
                invalid = self.invalid_bindings(binding, resources)
            except TerminologyError as e:
                report.warnings.append(e.message)
                continue
            for violation in invalid:
                report.invalid_resources.add(violation.resource_label)
                report.failures.append(violation.message())

        for binding in self.bindings:
            if binding.strength != BindingStrength.EXTENSIBLE:
                continue
            try:
                invalid = self.invalid_bindings(binding, resources)
            except TerminologyError as e:
                report.warnings.append(e.message)
                continue
            fallback = binding.without_valueset()
            for violation in invalid:
                # Checked per resource; unknown content is reported against that resource only
                try:
                    remaining = self.invalid_bindings(fallback, [violation.resource])
                except TerminologyError as e:
                    report.warnings.append(f"{violation.message()} ({e.message})")
                    continue
                if remaining:
                    report.warnings.append(remaining[0].message())
                else:
                    report.warnings.append(
                        f"{violation.message()}, but is in its stated code system"
                    )

        logger.info(
            "bindings_validated",
            resources=len(resources),
            failures=len(report.failures),
            warnings=len(report.warnings),
        )
        return report

    def check(
        self, resources: Sequence[Dict[str, Any]], check: str = "validate_resources"
    ) -> ValidationOutcome:
        """Validate bindings and report one outcome."""
        return self.validate(resources).outcome(check)

    def _is_invalid(self, binding: BindingDefinition, leaf: Any) -> bool:
        if self.absence_checker.is_absent(leaf):
            return False

        if binding.type == ElementType.CODEABLE_CONCEPT:
            if not isinstance(leaf, dict):
                return False
            codings = [c for c in leaf.get("coding") or [] if isinstance(c, dict)]
            if binding.system:
                # At least one coding must be in the value set
                return not any(
                    self.terminology.validate_code(
                        c.get("code"), system=c.get("system"), valueset_url=binding.system
                    )
                    for c in codings
                )
            # Every coding must be in its own code system
            return any(
                not self.terminology.validate_code(c.get("code"), system=c.get("system"))
                for c in codings
            )

        if binding.type in (ElementType.CODING, ElementType.QUANTITY):
            if not isinstance(leaf, dict):
                return False
            return not self.terminology.validate_code(
                leaf.get("code"), system=leaf.get("system"), valueset_url=binding.system
            )

        return not self.terminology.validate_code(leaf, valueset_url=binding.system)
