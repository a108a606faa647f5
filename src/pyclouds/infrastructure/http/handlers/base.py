"""Retry and error handler contracts used by the command executor."""

from abc import ABC, abstractmethod

from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.models import HttpResponse


class HttpRetryHandler(ABC):
    """Decides whether a failed response should be retried."""

    @abstractmethod
    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        """Return True to send ``command.current_request`` again."""


class HttpErrorHandler(ABC):
    """Turns a response that will not be retried into ``command.exception``."""

    @abstractmethod
    def handle_error(self, command: HttpCommand, response: HttpResponse) -> None:
        """Set ``command.exception``."""


class IOExceptionRetryHandler(ABC):
    """Decides whether a transport failure should be retried."""

    @abstractmethod
    def should_retry_request_on_error(self, command: HttpCommand, error: BaseException) -> bool:
        """Return True to send ``command.current_request`` again."""


class NeverRetry(HttpRetryHandler):
    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        return False


class AlwaysRetry(HttpRetryHandler):
    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        return True


def release_payload(response: HttpResponse) -> None:
    response.release_payload()


def close_client_but_keep_content_stream(response: HttpResponse) -> bytes:
    """Buffer the response body so it survives the connection and return it."""
    return response.content()
