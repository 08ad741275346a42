"""Custom exceptions for the FHIR conformance engine."""

from typing import Optional


class ConformanceError(Exception):
    """Base exception for all conformance engine exceptions."""

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code
        """
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(ConformanceError):
    """Raised when a rule-set or settings value is malformed."""

    def __init__(self, message: str = "Invalid configuration"):
        """Initialize ConfigurationError."""
        super().__init__(message, "CONFIGURATION_ERROR")


class AssertionFailure(ConformanceError):
    """Raised when a check finds a firm requirement violated."""

    def __init__(self, message: str):
        """Initialize AssertionFailure."""
        super().__init__(message, "ASSERTION_FAILED")


class SkipCheck(ConformanceError):
    """Raised when there is not enough evidence to judge a check."""

    def __init__(self, message: str):
        """Initialize SkipCheck."""
        super().__init__(message, "SKIPPED")


class TerminologyError(ConformanceError):
    """Base exception for unavailable terminology content."""


class UnknownValueSetError(TerminologyError):
    """Raised when a value set is not loaded in the terminology service."""

    def __init__(self, valueset_url: str):
        """Initialize UnknownValueSetError."""
        super().__init__(f"Unknown ValueSet: {valueset_url}", "UNKNOWN_VALUESET")
        self.valueset_url = valueset_url


class UnknownCodeSystemError(TerminologyError):
    """Raised when a code system is not loaded in the terminology service."""

    def __init__(self, system: str):
        """Initialize UnknownCodeSystemError."""
        super().__init__(f"Unknown CodeSystem: {system}", "UNKNOWN_CODESYSTEM")
        self.system = system


class TransportError(ConformanceError):
    """Raised when the FHIR server cannot be reached."""

    def __init__(self, message: str = "FHIR server request failed"):
        """Initialize TransportError."""
        super().__init__(message, "TRANSPORT_ERROR")
