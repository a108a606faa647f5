"""Base domain exceptions shared by every layer."""

from typing import Any, Optional


class DomainException(Exception):
    """Root of the pyclouds exception hierarchy."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging and error responses."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainException):
    """Raised when an input or a domain object fails validation."""


class ConfigurationError(DomainException):
    """Raised when configuration is missing or invalid."""


class InfrastructureError(DomainException):
    """Raised when an underlying system (network, provider, disk) fails."""


class IllegalStateError(DomainException):
    """Raised when an operation is attempted against a resource in the wrong state."""


class OperationTimeoutError(DomainException):
    """Raised when an operation does not complete within its allotted time."""


class InsufficientResourcesError(InfrastructureError):
    """Raised when a provider lacks capacity or quota for a request."""


class UnsupportedProviderError(ConfigurationError):
    """Raised when a provider id is not registered."""

    def __init__(self, provider_id: str, registered: Optional[list[str]] = None) -> None:
        super().__init__(
            f"Provider '{provider_id}' is not registered",
            details={"provider_id": provider_id, "registered": registered or []},
        )
        self.provider_id = provider_id


class AuthorizationError(DomainException):
    """Raised when credentials are rejected or lack permission (HTTP 401/403)."""


class ResourceNotFoundError(DomainException):
    """Raised when a requested resource does not exist (HTTP 404)."""


class ResourceConflictError(IllegalStateError):
    """Raised when a resource is in a state that conflicts with the request (HTTP 409)."""


class RateLimitExceededError(DomainException):
    """Raised when a provider throttles requests and retrying is not allowed (HTTP 429)."""
