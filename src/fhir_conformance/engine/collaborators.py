"""Interfaces of the external collaborators the engine depends on.

The engine never performs HTTP or owns terminology content itself. A host
supplies objects implementing these protocols; ``fhir_conformance.client``
and ``fhir_conformance.terminology`` provide default implementations.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence


@dataclass(frozen=True)
class SearchReply:
    """Response to a search interaction."""

    status_code: int
    body: Optional[Dict[str, Any]] = None
    resources: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Whether the server returned a success status."""
        return 200 <= self.status_code < 300

    def resources_of_type(self, resource_type: str) -> List[Dict[str, Any]]:
        """Entries of the requested type (searchset may include others)."""
        return [r for r in self.resources if r.get("resourceType") == resource_type]


@dataclass(frozen=True)
class ReadReply:
    """Response to a read interaction."""

    status_code: int
    resource: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        """Whether a resource was returned."""
        return 200 <= self.status_code < 300 and self.resource is not None


@dataclass(frozen=True)
class ResourceReference:
    """A ``Type/id`` pair discovered during earlier searches."""

    resource_type: str
    resource_id: str

    @property
    def reference(self) -> str:
        """Relative reference string."""
        return f"{self.resource_type}/{self.resource_id}"


class SearchExecutor(Protocol):
    """Executes FHIR searches."""

    def search(self, resource_type: str, params: Mapping[str, str]) -> SearchReply:
        """Search ``resource_type`` with the given query parameters."""
        ...


class ResourceReader(Protocol):
    """Executes FHIR reads."""

    def read(self, resource_type: str, resource_id: str) -> ReadReply:
        """Read one resource by type and logical id."""
        ...


class TerminologyLookup(Protocol):
    """Checks code membership in value sets and code systems.

    Implementations raise ``UnknownValueSetError`` or
    ``UnknownCodeSystemError`` when content is missing, distinct from
    returning False for a code that is not a member.
    """

    def validate_code(
        self,
        code: Any,
        system: Optional[str] = None,
        valueset_url: Optional[str] = None,
    ) -> bool:
        """Whether ``code`` is a member of the value set or code system."""
        ...


class ProfileValidator(Protocol):
    """Checks a resource against a profile's StructureDefinition."""

    def validate(self, resource: Dict[str, Any], profile_url: str) -> List[str]:
        """Error messages for ``resource``; empty when it conforms."""
        ...


class CapabilityLookup(Protocol):
    """What the server documents about itself."""

    def search_documented(self, resource_type: str) -> bool:
        """Whether the search interaction is documented for the type."""
        ...

    def documented_search_params(self, resource_type: str) -> Sequence[str]:
        """Names of search parameters documented for the type."""
        ...

    def known_not_supported(
        self, resource_type: str, interactions: Sequence[str]
    ) -> bool:
        """Whether the server is known to lack any of ``interactions``."""
        ...


class SessionState(Protocol):
    """Read-only view of state persisted by the host between sequences."""

    @property
    def patient_ids(self) -> Sequence[str]:
        """Patient identifiers to search with."""
        ...

    @property
    def resource_references(self) -> Sequence[ResourceReference]:
        """References discovered by earlier searches."""
        ...


@dataclass
class StaticSessionState:
    """Session state held in memory."""

    patient_ids: List[str] = field(default_factory=list)
    resource_references: List[ResourceReference] = field(default_factory=list)
