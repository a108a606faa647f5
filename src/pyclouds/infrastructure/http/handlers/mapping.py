"""Map HTTP failure statuses to domain exceptions."""

from typing import Optional

from pyclouds.domain.base.exceptions import (
    AuthorizationError,
    DomainException,
    RateLimitExceededError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.errors import HttpResponseError
from pyclouds.infrastructure.http.handlers.base import (
    HttpErrorHandler,
    close_client_but_keep_content_stream,
    release_payload,
)
from pyclouds.infrastructure.http.models import HttpResponse

MAX_CONTENT_IN_MESSAGE = 1024


def build_response_error(
    command: HttpCommand, response: HttpResponse, content: Optional[str] = None
) -> HttpResponseError:
    """Build the generic error for a response, quoting the body when there is one."""
    request_line = command.current_request.request_line
    if content:
        message = (
            f"command: {request_line} failed with response: {response.status_line}; "
            f"content: [{content}]"
        )
    else:
        message = f"command: {request_line} failed with response: {response.status_line}"
    return HttpResponseError(message, command=command, response=response, content=content)


def read_content(response: HttpResponse) -> Optional[str]:
    """Buffer and decode the body, truncated for use in messages."""
    data = close_client_but_keep_content_stream(response)
    if not data:
        return None
    text = data.decode("utf-8", errors="replace")
    if len(text) > MAX_CONTENT_IN_MESSAGE:
        text = text[:MAX_CONTENT_IN_MESSAGE] + "..."
    return text


class MapHttp4xxCodesToExceptions(HttpErrorHandler):
    """
    Status mapping used when a provider has nothing more specific.

    * 401, 403: ``AuthorizationError``
    * 404: ``ResourceNotFoundError``, except for DELETE
    * 409: ``ResourceConflictError``
    * 429: ``RateLimitExceededError``

    Everything else, and a 404 on DELETE, is left as ``HttpResponseError`` so
    delete fallbacks can decide. Mapped errors chain the ``HttpResponseError``
    as their cause.
    """

    def handle_error(self, command: HttpCommand, response: HttpResponse) -> None:
        try:
            content = read_content(response)
            response_error = build_response_error(command, response, content)
            message = content or (
                f"{command.current_request.request_line} -> {response.status_line}"
            )
            command.exception = map_status(command, response, response_error, message)
        finally:
            release_payload(response)


def map_status(
    command: HttpCommand,
    response: HttpResponse,
    response_error: HttpResponseError,
    message: str,
) -> DomainException:
    status = response.status_code
    mapped: Optional[DomainException] = None
    if status in (401, 403):
        mapped = AuthorizationError(message, details=response_error.details)
    elif status == 404 and command.current_request.method != "DELETE":
        mapped = ResourceNotFoundError(message, details=response_error.details)
    elif status == 409:
        mapped = ResourceConflictError(message, details=response_error.details)
    elif status == 429:
        mapped = RateLimitExceededError(message, details=response_error.details)

    if mapped is None:
        return response_error
    mapped.__cause__ = response_error
    return mapped
