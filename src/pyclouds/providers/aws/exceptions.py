"""Conversion of botocore errors into domain exceptions."""

from botocore.exceptions import ClientError

from pyclouds.domain.base.exceptions import (
    AuthorizationError,
    DomainException,
    InfrastructureError,
    RateLimitExceededError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from pyclouds.infrastructure.http.handlers.aws import exception_type_for_aws_code

_THROTTLING_CODES = frozenset({"Throttling", "ThrottlingException", "RequestLimitExceeded", "SlowDown"})

_STATUS_TYPES: dict[int, type[DomainException]] = {
    401: AuthorizationError,
    403: AuthorizationError,
    404: ResourceNotFoundError,
    409: ResourceConflictError,
    429: RateLimitExceededError,
}


def error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def status_code(error: ClientError) -> int:
    return int(error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)


def convert_client_error(error: ClientError, operation_name: str = "unknown") -> DomainException:
    """Convert AWS ClientError to domain exception, chained to the original."""
    code = error_code(error)
    message = error.response.get("Error", {}).get("Message", "") or str(error)

    exception_type = exception_type_for_aws_code(code)
    if exception_type is None and code in _THROTTLING_CODES:
        exception_type = RateLimitExceededError
    if exception_type is None:
        exception_type = _STATUS_TYPES.get(status_code(error), InfrastructureError)

    converted = exception_type(
        f"AWS Error: {code} - {message}",
        details={"aws_error_code": code, "operation": operation_name},
    )
    converted.__cause__ = error
    return converted
