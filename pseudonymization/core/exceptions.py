# pseudonymization/core/exceptions.py

"""Custom exception hierarchy for the pseudonymization workflow.

This module defines the specific error types used throughout the application
to differentiate between input, configuration, and collaborator errors.
Decode-time ambiguities are never raised; they resolve to empty results.
"""

from typing import Optional


class PseudonymizationError(Exception):
    """Base exception for all application-specific errors."""

    pass


class InputValidationError(PseudonymizationError):
    """Raised when request text is missing, not a string, or too long."""

    pass


class ConfigurationError(PseudonymizationError):
    """Raised when credentials, endpoints, or the vocabulary file are missing."""

    pass


class ExternalServiceError(PseudonymizationError):
    """Raised when a collaborator call fails or returns a malformed response."""

    def __init__(
        self, message: str, service: str = "unknown", status_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class PipelineError(PseudonymizationError):
    """Raised when a specific processing step in the workflow fails."""

    pass
