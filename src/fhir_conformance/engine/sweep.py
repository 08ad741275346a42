"""Retrying searches across the status value domain.

Some servers refuse a search unless a status is supplied. When the plain
search is rejected with a 400 and an OperationOutcome, the search is repeated
once per status value, in a fixed order, until one returns resources.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from fhir_conformance.engine.collaborators import (
    CapabilityLookup,
    SearchExecutor,
    SearchReply,
)
from fhir_conformance.engine.search import SearchParamMatcher
from fhir_conformance.utils.exceptions import AssertionFailure, ConfigurationError
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)

MISSING_OPERATION_OUTCOME = (
    "Server returned a status of 400 without an OperationOutcome."
)


@dataclass
class SweepResult:
    """Final reply of a search, with the status value that produced it."""

    reply: SearchReply
    params: Dict[str, str]
    status_value: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    calls: int = 0


def is_problem_report(body: Optional[Mapping[str, object]]) -> bool:
    """Whether a response body is an OperationOutcome."""
    return isinstance(body, Mapping) and body.get("resourceType") == "OperationOutcome"


class StatusSweepSearcher:
    """Search with a status sweep fallback for servers that require status."""

    def __init__(
        self,
        executor: SearchExecutor,
        resource_type: str,
        status_values: Sequence[str],
        matcher: Optional[SearchParamMatcher] = None,
        capabilities: Optional[CapabilityLookup] = None,
        status_param: str = "status",
    ):
        """Initialize searcher.

        Args:
            executor: Search collaborator
            resource_type: Resource type searched
            status_values: Every valid status, in the order to try them
            matcher: Checks that returned resources honour the status filter
            capabilities: Used to warn when the requirement is undocumented
            status_param: Name of the status search parameter
        """
        if not status_values:
            raise ConfigurationError("Status sweep requires at least one status value")
        self.executor = executor
        self.resource_type = resource_type
        self.status_values = tuple(status_values)
        self.matcher = matcher
        self.capabilities = capabilities
        self.status_param = status_param

    def search(self, params: Mapping[str, str]) -> SweepResult:
        """Search, sweeping status values if the server rejects the search."""
        reply = self.executor.search(self.resource_type, dict(params))
        if reply.status_code != 400:
            return SweepResult(reply=reply, params=dict(params), calls=1)

        result = self.sweep(reply, params)
        result.calls += 1
        return result

    def sweep(self, rejected: SearchReply, params: Mapping[str, str]) -> SweepResult:
        """Repeat a rejected search once per status value until one matches.

        Raises:
            AssertionFailure: If the rejection lacks an OperationOutcome, or a
                status search does not return a successful searchset Bundle
        """
        if not is_problem_report(rejected.body):
            raise AssertionFailure(MISSING_OPERATION_OUTCOME)

        warnings = []
        if not self._requirement_documented():
            warnings.append(
                "Server returned a status of 400 with an OperationOutcome, but the "
                f"search interaction for {self.resource_type} does not document a "
                f"required {self.status_param} parameter in the CapabilityStatement. "
                f"If the server requires a {self.status_param} parameter, it must "
                "document this requirement in its CapabilityStatement."
            )
            logger.warning(
                "status_requirement_undocumented", resource_type=self.resource_type
            )

        reply = rejected
        calls = 0
        for status_value in self.status_values:
            params_with_status = {**params, self.status_param: status_value}
            reply = self.executor.search(self.resource_type, params_with_status)
            calls += 1
            self._assert_searchset(reply)

            entries = reply.resources_of_type(self.resource_type)
            if not entries:
                continue

            if self.matcher is not None and self.matcher.supports(self.status_param):
                for entry in entries:
                    self.matcher.assert_matches(entry, self.status_param, status_value)

            logger.info(
                "status_sweep_matched",
                resource_type=self.resource_type,
                status=status_value,
                calls=calls,
            )
            return SweepResult(
                reply=reply,
                params=params_with_status,
                status_value=status_value,
                warnings=warnings,
                calls=calls,
            )

        logger.info("status_sweep_exhausted", resource_type=self.resource_type, calls=calls)
        return SweepResult(reply=reply, params=dict(params), warnings=warnings, calls=calls)

    def _requirement_documented(self) -> bool:
        if self.capabilities is None:
            return False
        return self.capabilities.search_documented(
            self.resource_type
        ) and self.status_param in self.capabilities.documented_search_params(
            self.resource_type
        )

    def _assert_searchset(self, reply: SearchReply) -> None:
        if not reply.ok:
            raise AssertionFailure(
                f"Bad response code: expected 200, 201, but found {reply.status_code}"
            )
        if not isinstance(reply.body, Mapping) or reply.body.get("resourceType") != "Bundle":
            found = (reply.body or {}).get("resourceType", "nothing")
            raise AssertionFailure(f"Expected FHIR Bundle but found: {found}")
