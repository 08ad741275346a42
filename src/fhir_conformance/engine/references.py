"""Bounded, cycle-safe resolution of resource references.

Every ``Reference`` element in a resource is followed, and the resources it
names are walked in turn. Resolution is best-effort: it stops quietly once the
resolution budget is spent, and a visited set keeps cyclic graphs from being
walked twice.
"""

import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from fhir_conformance.engine.collaborators import ResourceReader
from fhir_conformance.engine.outcomes import ValidationOutcome
from fhir_conformance.utils.exceptions import ConformanceError
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_RESOLUTIONS = 50

_RELATIVE_REFERENCE = re.compile(
    r"^(?P<type>[A-Z][A-Za-z]+)/(?P<id>[A-Za-z0-9\-\.]{1,64})"
    r"(?:/_history/[A-Za-z0-9\-\.]{1,64})?$"
)


def parse_reference(reference: str) -> Optional[Tuple[str, str]]:
    """Split a relative ``Type/id`` reference; None when malformed."""
    match = _RELATIVE_REFERENCE.match(reference)
    if not match:
        return None
    return match.group("type"), match.group("id")


def iter_references(resource: Any, path: str = "") -> Iterator[Tuple[str, str]]:
    """Yield ``(element path, reference)`` for every Reference in ``resource``."""
    if isinstance(resource, list):
        for item in resource:
            yield from iter_references(item, path)
        return
    if not isinstance(resource, dict):
        return

    reference = resource.get("reference")
    if isinstance(reference, str) and reference:
        yield path or "reference", reference

    for key, value in resource.items():
        if key == "reference" or not isinstance(value, (dict, list)):
            continue
        yield from iter_references(value, f"{path}.{key}" if path else key)


@dataclass
class ResolutionReport:
    """What a resolution walk reached."""

    visited: Set[str] = field(default_factory=set)
    resolved: List[str] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)
    budget_exhausted: bool = False

    def outcome(self, check: str) -> ValidationOutcome:
        """Fail when any followed reference did not resolve."""
        if self.problems:
            return ValidationOutcome.failed(check, "\n* " + "\n* ".join(self.problems))
        outcome = ValidationOutcome.passed(
            check, f"{len(self.resolved)} reference(s) resolved"
        )
        outcome.details["budget_exhausted"] = self.budget_exhausted
        return outcome


class ReferenceResolver:
    """Follow references through a reader collaborator within a budget."""

    def __init__(self, reader: ResourceReader, max_resolutions: int = DEFAULT_MAX_RESOLUTIONS):
        """Initialize resolver.

        Args:
            reader: Read collaborator used to fetch referenced resources
            max_resolutions: Total successful resolutions allowed per walk
        """
        self.reader = reader
        self.max_resolutions = max_resolutions

    def resolve(self, resources: Sequence[Dict[str, Any]]) -> ResolutionReport:
        """Walk the references of every resource, sharing one budget."""
        report = ResolutionReport()
        for resource in resources:
            if resource.get("resourceType") and resource.get("id"):
                report.visited.add(f"{resource['resourceType']}/{resource['id']}")

        pending: Deque[Dict[str, Any]] = deque(resources)
        while pending:
            resource = pending.popleft()
            for path, reference in iter_references(resource):
                if len(report.resolved) >= self.max_resolutions:
                    report.budget_exhausted = True
                    logger.info("reference_budget_exhausted", resolved=len(report.resolved))
                    return report
                fetched = self._resolve_one(resource, path, reference, report)
                if fetched is not None:
                    pending.append(fetched)
        return report

    def check(
        self, resources: Sequence[Dict[str, Any]], check: str = "reference_resolution"
    ) -> ValidationOutcome:
        """Resolve references and report one outcome."""
        return self.resolve(resources).outcome(check)

    def _resolve_one(
        self, source: Dict[str, Any], path: str, reference: str, report: ResolutionReport
    ) -> Optional[Dict[str, Any]]:
        # Contained and absolute references are not read from this server
        if reference.startswith("#") or "://" in reference or reference.startswith("urn:"):
            return None

        label = f"{source.get('resourceType')}.{path}"
        parsed = parse_reference(reference)
        if parsed is None:
            report.problems.append(f"{label} has malformed reference {reference!r}")
            return None

        resource_type, resource_id = parsed
        key = f"{resource_type}/{resource_id}"
        if key in report.visited:
            return None
        report.visited.add(key)

        try:
            reply = self.reader.read(resource_type, resource_id)
        except ConformanceError as e:
            report.problems.append(f"{label} did not resolve: {e.message}")
            return None

        if not reply.ok:
            report.problems.append(
                f"{label} did not resolve (status {reply.status_code})"
            )
            return None

        resource = reply.resource or {}
        found = f"{resource.get('resourceType')}/{resource.get('id')}"
        if found != key:
            report.problems.append(f"Expected {label} to resolve to {key}, received {found}")
            return None

        report.resolved.append(key)
        logger.debug("reference_resolved", reference=key)
        return resource
