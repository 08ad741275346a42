"""State threaded through one sequence run."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from fhir_conformance.engine.absence import DataAbsentObservation
from fhir_conformance.engine.collaborators import ResourceReference
from fhir_conformance.engine.outcomes import OutcomeStatus, ValidationOutcome


@dataclass
class RunContext:
    """Resources and facts gathered by earlier checks, read by later ones."""

    resource_type: str
    resources: List[Dict[str, Any]] = field(default_factory=list)
    references: List[ResourceReference] = field(default_factory=list)
    status_value: Optional[str] = None
    data_absent: DataAbsentObservation = field(default_factory=DataAbsentObservation)
    _seen: Set[str] = field(default_factory=set, repr=False)

    @property
    def resources_found(self) -> bool:
        """Whether any resource of the type has been collected."""
        return bool(self.resources)

    def add_resources(self, resources: Iterable[Dict[str, Any]]) -> int:
        """Add resources of the run's type, once per ``Type/id``.

        Returns:
            Number of resources newly added
        """
        added = 0
        for resource in resources:
            if resource.get("resourceType") != self.resource_type:
                continue
            key = f"{self.resource_type}/{resource.get('id')}"
            if resource.get("id") is not None and key in self._seen:
                continue
            self._seen.add(key)
            self.resources.append(resource)
            if resource.get("id"):
                self.references.append(ResourceReference(self.resource_type, resource["id"]))
            added += 1
        return added


@dataclass
class SequenceResult:
    """Outcomes of a sequence run, in check order."""

    outcomes: List[ValidationOutcome]
    status: OutcomeStatus
    context: RunContext

    def outcome(self, check: str) -> Optional[ValidationOutcome]:
        """Outcome of the named check."""
        return next((o for o in self.outcomes if o.check == check), None)
