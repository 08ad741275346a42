"""Profile rule-sets."""

from fhir_conformance.profiles.base import ProfileRuleSet, build_rule_set
from fhir_conformance.profiles.encounter import US_CORE_ENCOUNTER

__all__ = ["ProfileRuleSet", "US_CORE_ENCOUNTER", "build_rule_set"]
