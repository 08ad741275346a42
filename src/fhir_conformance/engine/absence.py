"""Data absent reason detection.

US Core lets a server say "this value is missing, and here is why" either with
a code from the data-absent-reason code system or with the data-absent-reason
extension on the element. Checks that look at coded values or element
presence consult an ``AbsenceMarkerChecker`` rather than knowing these
conventions themselves.
"""

from dataclasses import dataclass
from typing import Any, Protocol

DATA_ABSENT_REASON_SYSTEM = "http://terminology.hl7.org/CodeSystem/data-absent-reason"
DATA_ABSENT_REASON_EXTENSION = (
    "http://hl7.org/fhir/StructureDefinition/data-absent-reason"
)


class AbsenceMarkerChecker(Protocol):
    """Decides whether a leaf only records that data is absent."""

    def is_absent(self, leaf: Any) -> bool:
        """Whether ``leaf`` carries an explicit absence marker."""
        ...


@dataclass(frozen=True)
class DataAbsentObservation:
    """Which absence markers appear anywhere in a resource."""

    code_found: bool = False
    extension_found: bool = False

    def merge(self, other: "DataAbsentObservation") -> "DataAbsentObservation":
        """Combine observations across resources."""
        return DataAbsentObservation(
            code_found=self.code_found or other.code_found,
            extension_found=self.extension_found or other.extension_found,
        )


class DataAbsentReasonChecker:
    """Absence markers defined by the data-absent-reason code system and extension."""

    def is_absent(self, leaf: Any) -> bool:
        """Whether ``leaf`` is a DAR coding, a DAR concept, or has a DAR extension."""
        if not isinstance(leaf, dict):
            return False
        if self._has_extension(leaf) or self._is_coding(leaf):
            return True
        codings = leaf.get("coding")
        if isinstance(codings, list) and codings:
            return all(self._is_coding(coding) for coding in codings)
        return False

    def scan(self, resource: Any) -> DataAbsentObservation:
        """Report whether a DAR code or extension appears anywhere in ``resource``."""
        code_found = False
        extension_found = False
        stack = [resource]
        while stack:
            node = stack.pop()
            if isinstance(node, list):
                stack.extend(node)
            elif isinstance(node, dict):
                code_found = code_found or self._is_coding(node)
                extension_found = extension_found or (
                    node.get("url") == DATA_ABSENT_REASON_EXTENSION
                )
                stack.extend(node.values())
        return DataAbsentObservation(code_found, extension_found)

    @staticmethod
    def _is_coding(node: dict) -> bool:
        return node.get("system") == DATA_ABSENT_REASON_SYSTEM and bool(node.get("code"))

    @staticmethod
    def _has_extension(node: dict) -> bool:
        extensions = node.get("extension")
        if not isinstance(extensions, list):
            return False
        return any(
            isinstance(ext, dict) and ext.get("url") == DATA_ABSENT_REASON_EXTENSION
            for ext in extensions
        )


class NoAbsenceMarkers:
    """Treats no leaf as an absence marker."""

    def is_absent(self, leaf: Any) -> bool:
        """Always False."""
        return False
