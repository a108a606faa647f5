"""Retry and error handling for AWS XML error responses."""

from collections.abc import Iterable
from typing import Optional

from pyclouds.domain.base.exceptions import (
    AuthorizationError,
    DomainException,
    InsufficientResourcesError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.errors import HttpResponseError, ResponseParseError
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.base import (
    HttpErrorHandler,
    HttpRetryHandler,
    close_client_but_keep_content_stream,
    release_payload,
)
from pyclouds.infrastructure.http.handlers.mapping import (
    build_response_error,
    map_status,
    read_content,
)
from pyclouds.infrastructure.http.models import HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger
from pyclouds.infrastructure.parsing.handlers.aws_error import AWSError, AWSErrorHandler
from pyclouds.infrastructure.parsing.sax import ParseSax

logger = get_logger(__name__)

DEFAULT_RETRYABLE_CODES = frozenset(
    {
        "RequestTimeout",
        "OperationAborted",
        "SignatureDoesNotMatch",
        "RequestLimitExceeded",
        "Throttling",
    }
)

_AUTHORIZATION_CODES = frozenset(
    {"AuthFailure", "InvalidAccessKeyId", "AccessDenied", "UnauthorizedOperation"}
)
_NOT_FOUND_CODES = frozenset({"NoSuchBucket", "NoSuchKey", "NoSuchUpload", "NoSuchEntity"})
_CONFLICT_CODES = frozenset(
    {"BucketNotEmpty", "IncorrectState", "ResourceInUse", "BucketAlreadyOwnedByYou"}
)
_INSUFFICIENT_CODES = frozenset(
    {"InsufficientInstanceCapacity", "InstanceLimitExceeded", "VcpuLimitExceeded"}
)

_parse_error = ParseSax(AWSErrorHandler)


class AWSResponseError(HttpResponseError):
    """An HTTP failure that carried a parseable AWS error document."""

    def __init__(self, message: str, command: HttpCommand, response: HttpResponse, error: AWSError):
        super().__init__(message, command=command, response=response)
        self.error = error
        self.details["aws_error_code"] = error.code


def exception_type_for_aws_code(code: Optional[str]) -> Optional[type[DomainException]]:
    """Domain exception type for an AWS error code, or None when the code is not special."""
    if not code:
        return None
    if code in _AUTHORIZATION_CODES:
        return AuthorizationError
    if code in _NOT_FOUND_CODES or code.endswith(".NotFound"):
        return ResourceNotFoundError
    if (
        code in _CONFLICT_CODES
        or code.endswith("AlreadyExists")
        or code.endswith(".Duplicate")
        or code.endswith(".InUse")
    ):
        return ResourceConflictError
    if code in _INSUFFICIENT_CODES:
        return InsufficientResourcesError
    if code == "UnsupportedOperation" or code.endswith(".Unknown") or code.endswith(".Malformed"):
        return ValidationError
    return None


def parse_aws_error_from_content(command: HttpCommand, response: HttpResponse) -> Optional[AWSError]:
    """Parse an XML error body if there is one. The body stays readable afterwards."""
    data = close_client_but_keep_content_stream(response)
    if not data:
        return None
    content_type = (
        response.payload.metadata.content_type if response.payload is not None else None
    ) or response.get_first_header_or_none("Content-Type")
    if content_type and "xml" not in content_type and "unknown" not in content_type:
        return None
    if not data.lstrip().startswith(b"<"):
        return None
    try:
        error = _parse_error.parse_bytes(data, command.current_request)
    except ResponseParseError:
        logger.warning("Could not parse AWS error from %s", command)
        return None
    return error if error.code else None


class AWSClientErrorRetryHandler(HttpRetryHandler):
    """Back off and retry 400, 403 and 409 responses whose AWS error code is transient."""

    def __init__(
        self,
        backoff_handler: Optional[BackoffLimitedRetryHandler] = None,
        retryable_codes: Optional[Iterable[str]] = None,
    ) -> None:
        self.backoff_handler = backoff_handler or BackoffLimitedRetryHandler()
        self.retryable_codes = frozenset(
            DEFAULT_RETRYABLE_CODES if retryable_codes is None else retryable_codes
        )

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        if response.status_code not in (400, 403, 409):
            return False
        # HEAD responses carry no body
        if response.payload is None:
            return False
        error = parse_aws_error_from_content(command, response)
        if error is None:
            return False
        return self.should_retry_request_on_error(command, response, error)

    def should_retry_request_on_error(
        self, command: HttpCommand, response: HttpResponse, error: AWSError
    ) -> bool:
        if error.code in self.retryable_codes:
            return self.backoff_handler.should_retry_request(command, response)
        return False


class ParseAWSErrorFromXmlContent(HttpErrorHandler):
    """
    Map AWS error documents to domain exceptions.

    The error code decides first; when it is absent or unrecognised the
    status code does, as in ``MapHttp4xxCodesToExceptions``.
    """

    def handle_error(self, command: HttpCommand, response: HttpResponse) -> None:
        try:
            command.exception = self._build_exception(command, response)
        finally:
            release_payload(response)

    def _build_exception(self, command: HttpCommand, response: HttpResponse) -> DomainException:
        error = parse_aws_error_from_content(command, response)
        exception: HttpResponseError
        if error is not None:
            message = error.message or error.code or ""
            if error.code == "SignatureDoesNotMatch" and error.string_signed:
                message = f"{message}; string signed: {error.string_signed}"
            exception = AWSResponseError(
                f"request {command.current_request.request_line} failed with code "
                f"{response.status_code}, error: {error.code}: {message}",
                command,
                response,
                error,
            )
        else:
            content = read_content(response)
            exception = build_response_error(command, response, content)
            message = content or (
                f"{command.current_request.request_line} -> {response.status_line}"
            )
        return refine_exception(command, response, exception, error, message)


def refine_exception(
    command: HttpCommand,
    response: HttpResponse,
    exception: HttpResponseError,
    error: Optional[AWSError],
    message: str,
) -> DomainException:
    refined_type = exception_type_for_aws_code(error.code if error else None)
    if refined_type is None:
        return map_status(command, response, exception, message)
    refined = refined_type(message, details=dict(exception.details))
    refined.__cause__ = exception
    return refined
