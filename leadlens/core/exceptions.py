"""
Custom exceptions for LeadLens.

Provides a hierarchy of exceptions so stage runners, the AI-call client and
the orchestrator can tell fatal from recoverable failures.
"""

from typing import Any, Dict, Optional


class LeadLensError(Exception):
    """Base exception for all LeadLens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(LeadLensError):
    """Raised when there are configuration issues."""
    pass


class DataAccessError(LeadLensError):
    """Base class for errors talking to external collaborators."""
    pass


class LLMError(DataAccessError):
    """AI provider call failed after the client's own retries."""
    pass


class RateLimitError(LLMError):
    """Rate limiting errors."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ExternalServiceError(LLMError):
    """External service is unavailable or returning errors."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(f"{service}: {message}", **kwargs)
        self.service = service
        self.status_code = status_code


class ValidationError(LeadLensError):
    """Input record validation errors."""
    pass


class StageError(LeadLensError):
    """A pipeline stage could not produce a usable outcome."""

    def __init__(self, stage: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{stage} failed: {message}", details)
        self.stage = stage
        self.reason = message


class SchemaViolationError(StageError):
    """A stage response did not conform to the stage output schema."""
    pass


class BusinessContextError(StageError):
    """Business context could not be resolved for the request."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("business_context", message, details)
