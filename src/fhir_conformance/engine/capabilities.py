"""View over a server's CapabilityStatement."""

from typing import Any, Dict, List, Optional, Sequence, Set

# Interaction names used by checks mapped to CapabilityStatement codes
_INTERACTION_CODES = {
    "read": "read",
    "search": "search-type",
    "vread": "vread",
    "history": "history-instance",
}


class ServerCapabilities:
    """Answers support questions from a CapabilityStatement.

    A missing statement means support is unknown: nothing is reported as
    documented, and nothing is reported as known to be unsupported.
    """

    def __init__(self, capability_statement: Optional[Dict[str, Any]] = None):
        """Initialize capabilities.

        Args:
            capability_statement: CapabilityStatement resource as JSON
        """
        self.capability_statement = capability_statement
        self._resources: Dict[str, Dict[str, Any]] = {}
        for rest in (capability_statement or {}).get("rest", []) or []:
            if rest.get("mode", "server") != "server":
                continue
            for resource in rest.get("resource", []) or []:
                if resource.get("type"):
                    self._resources[resource["type"]] = resource

    @property
    def known(self) -> bool:
        """Whether a statement was provided."""
        return self.capability_statement is not None

    def _interactions(self, resource_type: str) -> Set[str]:
        resource = self._resources.get(resource_type, {})
        return {
            interaction.get("code")
            for interaction in resource.get("interaction", []) or []
            if interaction.get("code")
        }

    def supports_interaction(self, resource_type: str, interaction: str) -> bool:
        """Whether the statement declares ``interaction`` for the type."""
        code = _INTERACTION_CODES.get(interaction, interaction)
        return code in self._interactions(resource_type)

    def search_documented(self, resource_type: str) -> bool:
        """Whether searching the type is documented."""
        return self.supports_interaction(resource_type, "search")

    def documented_search_params(self, resource_type: str) -> List[str]:
        """Search parameter names documented for the type."""
        resource = self._resources.get(resource_type, {})
        return [
            param["name"]
            for param in resource.get("searchParam", []) or []
            if param.get("name")
        ]

    def known_not_supported(
        self, resource_type: str, interactions: Sequence[str]
    ) -> bool:
        """Whether the statement rules out any of ``interactions``."""
        if not self.known:
            return False
        if resource_type not in self._resources:
            return True
        return any(
            not self.supports_interaction(resource_type, interaction)
            for interaction in interactions
        )
