"""Check outcomes and their aggregation.

Every check reports exactly one outcome. Failures and skips carry a
human-readable message; warnings are collected alongside the status so a
passing check can still surface advisory findings.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field


class OutcomeStatus(str, Enum):
    """Outcome of a single conformance check."""

    PASS = "pass"
    SKIP = "skip"  # Insufficient evidence to judge
    WARN = "warn"  # Advisory mismatch
    FAIL = "fail"  # Firm requirement violated

    @property
    def severity(self) -> int:
        """Rank used when aggregating outcomes."""
        return _SEVERITY[self]


_SEVERITY = {
    OutcomeStatus.PASS: 0,
    OutcomeStatus.SKIP: 1,
    OutcomeStatus.WARN: 2,
    OutcomeStatus.FAIL: 3,
}

# OperationOutcome.issue.severity for each status
_ISSUE_SEVERITY = {
    OutcomeStatus.PASS: "information",
    OutcomeStatus.SKIP: "information",
    OutcomeStatus.WARN: "warning",
    OutcomeStatus.FAIL: "error",
}


class ValidationOutcome(BaseModel):
    """Result of one check."""

    check: str
    status: OutcomeStatus
    message: str = ""
    warnings: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def passed(
        cls, check: str, message: str = "", warnings: Optional[List[str]] = None
    ) -> "ValidationOutcome":
        """Build a pass outcome, downgraded to warn when warnings exist."""
        warnings = list(warnings or [])
        status = OutcomeStatus.WARN if warnings else OutcomeStatus.PASS
        return cls(check=check, status=status, message=message, warnings=warnings)

    @classmethod
    def failed(
        cls, check: str, message: str, warnings: Optional[List[str]] = None
    ) -> "ValidationOutcome":
        """Build a fail outcome."""
        return cls(
            check=check,
            status=OutcomeStatus.FAIL,
            message=message,
            warnings=list(warnings or []),
        )

    @classmethod
    def warned(
        cls, check: str, message: str, warnings: Optional[List[str]] = None
    ) -> "ValidationOutcome":
        """Build a warn outcome."""
        return cls(
            check=check,
            status=OutcomeStatus.WARN,
            message=message,
            warnings=list(warnings or [message]),
        )

    @classmethod
    def skipped(
        cls, check: str, message: str, warnings: Optional[List[str]] = None
    ) -> "ValidationOutcome":
        """Build a skip outcome."""
        return cls(
            check=check,
            status=OutcomeStatus.SKIP,
            message=message,
            warnings=list(warnings or []),
        )

    def to_operation_outcome_issue(self) -> Dict[str, Any]:
        """Convert to a FHIR OperationOutcome issue component."""
        return {
            "severity": _ISSUE_SEVERITY[self.status],
            "code": "informational" if self.status != OutcomeStatus.FAIL else "invalid",
            "diagnostics": self.message or self.status.value,
            "details": {"text": f"{self.check}: {self.status.value}"},
        }


def worst_status(
    outcomes: Iterable[ValidationOutcome], required: Optional[Iterable[str]] = None
) -> OutcomeStatus:
    """Return the worst status among hard-required checks.

    Args:
        outcomes: Outcomes of a run
        required: Names of the checks that count; all checks when omitted
    """
    required_names = set(required) if required is not None else None
    worst = OutcomeStatus.PASS
    for outcome in outcomes:
        if required_names is not None and outcome.check not in required_names:
            continue
        if outcome.status.severity > worst.severity:
            worst = outcome.status
    return worst


def to_operation_outcome(outcomes: Iterable[ValidationOutcome]) -> Dict[str, Any]:
    """Render a run as a FHIR OperationOutcome resource."""
    return {
        "resourceType": "OperationOutcome",
        "issue": [outcome.to_operation_outcome_issue() for outcome in outcomes],
    }
