"""Profile rule-set records.

A rule-set is the data half of a profile sequence: which search parameters a
resource type supports and where they point, its terminology bindings, its
must-support elements and the status domain used by the status sweep. Rule
sets are validated when they are built, so a malformed table fails at import
time instead of turning into silent path misses during a run.
"""

from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from fhir_conformance.engine.bindings import BindingDefinition
from fhir_conformance.engine.must_support import MustSupportElement
from fhir_conformance.engine.search import SearchParamSpec
from fhir_conformance.utils.exceptions import ConfigurationError


class ProfileRuleSet(BaseModel):
    """Validation data for one resource type and profile."""

    model_config = ConfigDict(frozen=True)

    resource_type: str
    profile_url: str
    search_params: Tuple[SearchParamSpec, ...]
    bindings: Tuple[BindingDefinition, ...] = ()
    must_supports: Tuple[MustSupportElement, ...] = ()
    status_param: str = "status"
    status_values: Tuple[str, ...] = ()
    search_combinations: Tuple[Tuple[str, ...], ...] = ()

    @model_validator(mode="after")
    def check_consistency(self) -> "ProfileRuleSet":
        """Cross-field checks between the tables."""
        names = [spec.name for spec in self.search_params]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate search parameters in {self.resource_type} rule-set")
        if not self.status_values:
            raise ValueError(f"{self.resource_type} rule-set needs a status domain")
        if len(self.status_values) != len(set(self.status_values)):
            raise ValueError(f"Duplicate status values in {self.resource_type} rule-set")
        for combination in self.search_combinations:
            unknown = [name for name in combination if name not in names]
            if unknown:
                raise ValueError(
                    f"Search combination {combination} uses undefined parameters {unknown}"
                )
        return self

    @property
    def search_param_names(self) -> List[str]:
        """Names of the supported search parameters."""
        return [spec.name for spec in self.search_params]


def build_rule_set(definition: Dict[str, Any]) -> ProfileRuleSet:
    """Build a rule-set from literal tables.

    Raises:
        ConfigurationError: If any table is malformed
    """
    try:
        return ProfileRuleSet.model_validate(definition)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid profile rule-set: {e}") from e
