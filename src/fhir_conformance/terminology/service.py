"""Local FHIR terminology service.

Answers code membership questions from ValueSet and CodeSystem resources
loaded into memory, for validating environments that have terminology
content on disk rather than a terminology server.
"""

import json
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from fhir_conformance.config import Settings
from fhir_conformance.utils.exceptions import (
    ConfigurationError,
    UnknownCodeSystemError,
    UnknownValueSetError,
)
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)

Member = Tuple[str, str]  # (system, code)


class ConceptDefinition(BaseModel):
    """Concept in a code system, possibly with child concepts."""

    model_config = ConfigDict(extra="ignore")

    code: str
    display: Optional[str] = None
    concept: List["ConceptDefinition"] = Field(default_factory=list)


class CodeSystem(BaseModel):
    """FHIR CodeSystem resource."""

    model_config = ConfigDict(extra="ignore")

    resourceType: str = "CodeSystem"
    url: str
    version: Optional[str] = None
    name: Optional[str] = None
    content: str = "complete"  # complete, not-present, example, fragment, supplement
    concept: List[ConceptDefinition] = Field(default_factory=list)

    def codes(self) -> Set[str]:
        """Every code in the system, nested concepts included."""
        found: Set[str] = set()
        stack = list(self.concept)
        while stack:
            concept = stack.pop()
            found.add(concept.code)
            stack.extend(concept.concept)
        return found


class ValueSetConceptReference(BaseModel):
    """Concept listed in a value set include."""

    model_config = ConfigDict(extra="ignore")

    code: str
    display: Optional[str] = None


class ValueSetInclude(BaseModel):
    """Include or exclude criterion of a value set compose."""

    model_config = ConfigDict(extra="ignore")

    system: Optional[str] = None
    concept: List[ValueSetConceptReference] = Field(default_factory=list)
    valueSet: List[str] = Field(default_factory=list)


class ValueSetCompose(BaseModel):
    """Value set composition."""

    model_config = ConfigDict(extra="ignore")

    include: List[ValueSetInclude] = Field(default_factory=list)
    exclude: List[ValueSetInclude] = Field(default_factory=list)


class ExpansionContains(BaseModel):
    """Code in a value set expansion."""

    model_config = ConfigDict(extra="ignore")

    system: Optional[str] = None
    code: Optional[str] = None
    contains: List["ExpansionContains"] = Field(default_factory=list)


class ValueSetExpansion(BaseModel):
    """Value set expansion."""

    model_config = ConfigDict(extra="ignore")

    contains: List[ExpansionContains] = Field(default_factory=list)


class ValueSet(BaseModel):
    """FHIR ValueSet resource."""

    model_config = ConfigDict(extra="ignore")

    resourceType: str = "ValueSet"
    url: str
    version: Optional[str] = None
    name: Optional[str] = None
    compose: Optional[ValueSetCompose] = None
    expansion: Optional[ValueSetExpansion] = None


class LocalTerminologyService:
    """Terminology lookup over loaded ValueSets and CodeSystems."""

    def __init__(
        self,
        value_sets: Iterable[ValueSet] = (),
        code_systems: Iterable[CodeSystem] = (),
    ):
        """Initialize terminology service.

        Args:
            value_sets: Value sets to serve
            code_systems: Code systems to serve
        """
        self.value_sets: Dict[str, ValueSet] = {}
        self.code_systems: Dict[str, CodeSystem] = {}
        self._code_cache: Dict[str, Set[str]] = {}
        self._member_cache: Dict[str, FrozenSet[Member]] = {}
        for value_set in value_sets:
            self.add_value_set(value_set)
        for code_system in code_systems:
            self.add_code_system(code_system)

    @classmethod
    def from_directory(cls, directory: Path) -> "LocalTerminologyService":
        """Load every ``*.json`` ValueSet, CodeSystem or Bundle in ``directory``."""
        service = cls()
        service.load_directory(directory)
        return service

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalTerminologyService":
        """Load from the configured terminology directory, if any."""
        if not settings.terminology_dir:
            return cls()
        return cls.from_directory(Path(settings.terminology_dir))

    def add_value_set(self, value_set: ValueSet) -> None:
        """Register a value set."""
        self.value_sets[value_set.url] = value_set
        self._member_cache.clear()

    def add_code_system(self, code_system: CodeSystem) -> None:
        """Register a code system."""
        self.code_systems[code_system.url] = code_system
        self._code_cache.pop(code_system.url, None)
        self._member_cache.clear()

    def load_resource(self, resource: Dict[str, Any]) -> None:
        """Register a ValueSet, CodeSystem, or every one inside a Bundle."""
        resource_type = resource.get("resourceType")
        if resource_type == "ValueSet":
            self.add_value_set(ValueSet.model_validate(resource))
        elif resource_type == "CodeSystem":
            self.add_code_system(CodeSystem.model_validate(resource))
        elif resource_type == "Bundle":
            for entry in resource.get("entry", []) or []:
                if isinstance(entry.get("resource"), dict):
                    self.load_resource(entry["resource"])
        else:
            logger.debug("terminology_resource_ignored", resource_type=resource_type)

    def load_directory(self, directory: Path) -> None:
        """Load every JSON terminology resource in ``directory``."""
        if not directory.is_dir():
            raise ConfigurationError(f"Terminology directory not found: {directory}")
        for path in sorted(directory.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    self.load_resource(json.load(f))
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid terminology file {path}: {e}") from e
        logger.info(
            "terminology_loaded",
            directory=str(directory),
            value_sets=len(self.value_sets),
            code_systems=len(self.code_systems),
        )

    def validate_code(
        self,
        code: Any,
        system: Optional[str] = None,
        valueset_url: Optional[str] = None,
    ) -> bool:
        """Whether ``code`` belongs to the value set, or else to ``system``.

        Raises:
            UnknownValueSetError: If ``valueset_url`` is not loaded
            UnknownCodeSystemError: If a needed code system is not loaded
        """
        if not isinstance(code, str) or not code:
            return False

        if valueset_url:
            members = self._members(valueset_url, frozenset())
            if system:
                return (system, code) in members
            return any(member_code == code for _, member_code in members)

        if system:
            return code in self._codes(system)

        return False

    def _codes(self, system: str) -> Set[str]:
        if system not in self._code_cache:
            code_system = self.code_systems.get(system)
            if code_system is None:
                raise UnknownCodeSystemError(system)
            self._code_cache[system] = code_system.codes()
        return self._code_cache[system]

    def _members(self, url: str, seen: FrozenSet[str]) -> FrozenSet[Member]:
        return self._expand(url, seen)[0]

    def _expand(self, url: str, seen: FrozenSet[str]) -> Tuple[FrozenSet[Member], Set[str]]:
        """Members of ``url`` and the value sets whose import cycle was cut.

        A result only depends on the cut value sets through the one being
        expanded further up the stack, so it is cached once none remain.
        """
        if url in self._member_cache:
            return self._member_cache[url], set()
        value_set = self.value_sets.get(url)
        if value_set is None:
            raise UnknownValueSetError(url)
        if url in seen:
            # Circular value set import
            return frozenset(), {url}

        seen = seen | {url}
        cut: Set[str] = set()
        if value_set.expansion and value_set.expansion.contains:
            members = frozenset(self._expansion_members(value_set.expansion.contains))
        else:
            compose = value_set.compose or ValueSetCompose()
            included: Set[Member] = set()
            for criterion in compose.include:
                criterion_members, criterion_cut = self._criterion_members(criterion, seen)
                included |= criterion_members
                cut |= criterion_cut
            for criterion in compose.exclude:
                criterion_members, criterion_cut = self._criterion_members(criterion, seen)
                included -= criterion_members
                cut |= criterion_cut
            members = frozenset(included)

        cut.discard(url)
        if not cut:
            self._member_cache[url] = members
        return members, cut

    def _criterion_members(
        self, criterion: ValueSetInclude, seen: FrozenSet[str]
    ) -> Tuple[Set[Member], Set[str]]:
        members: Optional[Set[Member]] = None
        cut: Set[str] = set()
        if criterion.system:
            if criterion.concept:
                members = {(criterion.system, c.code) for c in criterion.concept}
            else:
                members = {(criterion.system, code) for code in self._codes(criterion.system)}
        for imported in criterion.valueSet:
            imported_members, imported_cut = self._expand(imported, seen)
            cut |= imported_cut
            # Multiple criteria within one include intersect
            members = set(imported_members) if members is None else members & imported_members
        return members or set(), cut

    def _expansion_members(self, contains: List[ExpansionContains]) -> List[Member]:
        members = []
        for item in contains:
            if item.system and item.code:
                members.append((item.system, item.code))
            members.extend(self._expansion_members(item.contains))
        return members
