"""
Custom exceptions for the Protocol to FHIR pipeline.

Extraction and deployment errors are surfaced to the caller verbatim.
Synthesis failures never leave the synthesis stage, and validation
failures never leave the validator.
"""

from typing import Optional, Sequence


class ProtofhirError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown pipeline error occurred."


class ExtractionError(ProtofhirError):
    """Raised when a document cannot be decoded or parsed into text."""

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def default_message(self) -> str:
        return "Document text could not be extracted."


class CandidateFailure(ProtofhirError):
    """One remote synthesis candidate did not yield a usable bundle."""

    def __init__(
        self,
        endpoint: str,
        message: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code

    @property
    def default_message(self) -> str:
        return "Synthesis candidate failed."

    def __str__(self) -> str:
        return f"{self.endpoint}: {self.message}"


class SynthesisDegraded(ProtofhirError):
    """All remote candidates failed and the local fallback bundle was used.

    Recorded on the synthesis outcome and logged, never raised to callers.
    """

    def __init__(self, failures: Sequence[CandidateFailure] = ()) -> None:
        self.failures = list(failures)
        summary = "; ".join(str(f) for f in self.failures) or "no remote candidates configured"
        super().__init__(f"Remote synthesis unavailable, local fallback used ({summary})")


class ValidationInternalError(ProtofhirError):
    """A validation rule could not be evaluated."""

    @property
    def default_message(self) -> str:
        return "Validation rule failed unexpectedly."


class DeploymentError(ProtofhirError):
    """Base exception for deployment failures."""

    @property
    def default_message(self) -> str:
        return "Deployment failed."


class DeploymentBlockedError(DeploymentError):
    """Raised when the last validation report marks the bundle invalid."""

    @property
    def default_message(self) -> str:
        return "Cannot deploy invalid FHIR resources. Please fix validation errors first."


class DeploymentTransportError(DeploymentError):
    """Raised when the publish call to the target system itself fails."""

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    @property
    def default_message(self) -> str:
        return "Publishing the bundle to the target system failed."


class StageTransitionError(ProtofhirError):
    """Raised when an operation is invoked at the wrong pipeline stage."""

    def __init__(self, current: int, operation: str) -> None:
        super().__init__(f"Cannot {operation} at stage {current}")
        self.current = current
        self.operation = operation


class OperationCancelled(ProtofhirError):
    """Raised when the caller abandons a long-running operation."""

    @property
    def default_message(self) -> str:
        return "Operation cancelled by caller."
