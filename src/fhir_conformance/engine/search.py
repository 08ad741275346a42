"""Matching returned resources against the search that produced them.

A server that ignores a search parameter it does not support returns
unfiltered results. Every resource in a search reply is therefore checked
against each parameter that was sent.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from fhir_conformance.engine.dates import validate_date_search
from fhir_conformance.engine.paths import parse_path, resolve_element_from_path
from fhir_conformance.utils.exceptions import AssertionFailure, ConfigurationError
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)

_UNESCAPED_COMMA = re.compile(r"(?<!\\),")


class ComparisonMode(str, Enum):
    """How a search value is compared with resource content."""

    TOKEN = "token"  # Exact string, comma-separated list
    REFERENCE = "reference"  # Bare id or Type/id
    DATE = "date"  # Prefixed date against date or Period


class SearchParamSpec(BaseModel):
    """Search parameter definition for one resource type."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    mode: ComparisonMode = ComparisonMode.TOKEN
    target_type: Optional[str] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject malformed element paths at load time."""
        try:
            parse_path(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e
        return v


def split_search_values(value: str) -> List[str]:
    """Split a comma-separated search value, honouring ``\\,`` escapes.

    >>> split_search_values("a\\\\,b,c")
    ['a,b', 'c']
    """
    return [part.replace("\\,", ",") for part in _UNESCAPED_COMMA.split(value)]


def reference_candidates(value: str, target_type: Optional[str]) -> List[str]:
    """Equivalent spellings of a reference search value."""
    if not target_type:
        return [value]
    prefix = f"{target_type}/"
    bare = value[len(prefix):] if value.startswith(prefix) else value
    return [bare, prefix + bare]


class SearchParamMatcher:
    """Verify resources satisfy the search parameters that returned them."""

    def __init__(self, specs: Iterable[SearchParamSpec]):
        """Initialize matcher.

        Args:
            specs: Supported search parameters of one resource type
        """
        self.specs: Dict[str, SearchParamSpec] = {spec.name: spec for spec in specs}

    def supports(self, name: str) -> bool:
        """Whether a parameter has a matching rule."""
        return name in self.specs

    def matches(self, resource: Dict[str, Any], name: str, value: str) -> bool:
        """Whether ``resource`` satisfies ``name=value``."""
        spec = self.specs.get(name)
        if spec is None:
            raise ConfigurationError(f"No search parameter definition for {name!r}")

        if spec.mode == ComparisonMode.DATE:
            return resolve_element_from_path(
                resource, spec.path, lambda date: validate_date_search(value, date)
            )

        if spec.mode == ComparisonMode.REFERENCE:
            candidates = reference_candidates(value, spec.target_type)
        else:
            candidates = split_search_values(value)
        return resolve_element_from_path(
            resource, spec.path, lambda found: found in candidates
        )

    def assert_matches(self, resource: Dict[str, Any], name: str, value: str) -> None:
        """Raise AssertionFailure unless ``resource`` satisfies ``name=value``."""
        if not self.matches(resource, name, value):
            raise AssertionFailure(
                f"{name} on resource does not match {name} requested"
            )

    def assert_matches_params(
        self, resource: Dict[str, Any], params: Mapping[str, str]
    ) -> None:
        """Check every supported parameter of a search against ``resource``."""
        for name, value in params.items():
            if not self.supports(name):
                logger.debug("search_param_unchecked", param=name)
                continue
            self.assert_matches(resource, name, value)
