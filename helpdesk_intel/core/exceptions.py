"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

AI-side failures are recovered locally by the pipeline; these types exist so
each failure mode stays distinguishable at the boundaries (HTTP mapping,
logging, telemetry).
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for inference API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class ServiceUnavailableException(ExternalServiceException):
    """Inference backend is unconfigured or unreachable."""

    def __init__(self, message: str = "inference capability unavailable", details: Optional[dict] = None):
        super().__init__("Inference", message, details)


class TicketStoreException(ExternalServiceException):
    """Exception for helpdesk ticket store failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Ticket Store", message, details)


class GovernorRefusalException(ApplicationException):
    """Base for admission refusals by the cost/rate governor."""

    def __init__(self, message: str, limit: str, details: Optional[dict] = None):
        self.limit = limit
        super().__init__(message, details or {"limit": limit})


class RateLimitExceededException(GovernorRefusalException):
    """A request window (minute/hour/day) is at its ceiling."""


class CostLimitExceededException(GovernorRefusalException):
    """Token or dollar budget would be exceeded, or the model has no price."""


class TimeoutException(ApplicationException):
    """A bounded wait was exceeded."""

    def __init__(self, operation: str, timeout_seconds: float, details: Optional[dict] = None):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} exceeded {timeout_seconds}s",
            details or {"operation": operation, "timeout_seconds": timeout_seconds}
        )


class PartialFailureException(ApplicationException):
    """An AI side-branch stage failed while the primary ticket operation succeeded."""

    def __init__(self, ticket_id: str, stage: str, reason: str):
        self.ticket_id = ticket_id
        self.stage = stage
        self.reason = reason
        super().__init__(
            f"AI stage '{stage}' failed for ticket {ticket_id}: {reason}",
            {"ticket_id": ticket_id, "stage": stage, "reason": reason}
        )


class LearningItemFailedException(DomainException):
    """A learning queue item exhausted its retry budget."""

    def __init__(self, ticket_id: str, attempts: int, last_error: str):
        self.ticket_id = ticket_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Learning item for ticket {ticket_id} failed after {attempts} attempts",
            {"ticket_id": ticket_id, "attempts": attempts, "last_error": last_error}
        )
