"""Command execution with pluggable retry and error handling."""

from abc import ABC, abstractmethod
from typing import Optional

import requests

from pyclouds.config.schemas import HttpConfig
from pyclouds.domain.base.payload import ContentMetadata, Payload
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.errors import HttpTransportError
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.base import (
    HttpErrorHandler,
    HttpRetryHandler,
    IOExceptionRetryHandler,
)
from pyclouds.infrastructure.http.handlers.delegating import (
    DelegatingErrorHandler,
    DelegatingRetryHandler,
    retry_handler_from_config,
)
from pyclouds.infrastructure.http.handlers.renew import InvalidatableCache
from pyclouds.infrastructure.http.models import HttpRequest, HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)
header_logger = get_logger("pyclouds.http.headers")


class BaseHttpCommandExecutorService(ABC):
    """
    Send a command until it succeeds, a handler gives up, or an error is final.

    Subclasses only implement ``_send``. Responses with status 300 or more
    are offered to the retry handler; if it declines, the error handler
    records ``command.exception`` which is then raised.
    """

    def __init__(
        self,
        retry_handler: Optional[HttpRetryHandler] = None,
        error_handler: Optional[HttpErrorHandler] = None,
        io_retry_handler: Optional[IOExceptionRetryHandler] = None,
    ) -> None:
        self.retry_handler = retry_handler or DelegatingRetryHandler()
        self.error_handler = error_handler or DelegatingErrorHandler()
        self.io_retry_handler = io_retry_handler or BackoffLimitedRetryHandler()

    def invoke(self, command: HttpCommand) -> HttpResponse:
        response: Optional[HttpResponse] = None
        while True:
            request = command.current_request
            for request_filter in request.filters:
                request = request_filter.filter(request)

            header_logger.debug(">> %s", request.request_line)
            try:
                response = self._send(request)
            except OSError as e:
                if request.is_idempotent() and self.io_retry_handler.should_retry_request_on_error(
                    command, e
                ):
                    logger.debug("Retrying %s after I/O error: %s", command, e)
                    continue
                command.exception = HttpTransportError(
                    f"{e} connecting to {request.request_line}", command
                )
                command.exception.__cause__ = e
                break
            header_logger.debug("<< %s", response.status_line)

            if response.status_code < 300:
                break
            if self.retry_handler.should_retry_request(command, response):
                response.release_payload()
                continue
            self.error_handler.handle_error(command, response)
            if command.exception is not None:
                response.release_payload()
            break

        if command.exception is not None:
            raise command.exception
        return response  # type: ignore[return-value]

    @abstractmethod
    def _send(self, request: HttpRequest) -> HttpResponse:
        """Send one request. Transport failures raise ``OSError`` subclasses."""

    def close(self) -> None:
        pass


class RequestsHttpCommandExecutorService(BaseHttpCommandExecutorService):
    """
    Executor backed by a ``requests.Session``.

    Redirects are not followed by requests itself; the retry handlers do it.
    Unless a ``retry_handler`` is given, the chain comes from
    ``retry_handler_from_config`` and renews ``auth_cache`` on 401.
    """

    def __init__(
        self,
        config: Optional[HttpConfig] = None,
        session: Optional[requests.Session] = None,
        retry_handler: Optional[HttpRetryHandler] = None,
        error_handler: Optional[HttpErrorHandler] = None,
        io_retry_handler: Optional[IOExceptionRetryHandler] = None,
        auth_cache: Optional[InvalidatableCache] = None,
    ) -> None:
        self.config = config or HttpConfig()
        backoff = BackoffLimitedRetryHandler(
            retry_count_limit=self.config.max_retries, delay_start=self.config.retry_delay_start
        )
        super().__init__(
            retry_handler=retry_handler
            or retry_handler_from_config(self.config, auth_cache=auth_cache, backoff=backoff),
            error_handler=error_handler,
            io_retry_handler=io_retry_handler or backoff,
        )
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = self.config.user_agent

    def _send(self, request: HttpRequest) -> HttpResponse:
        headers = dict(request.headers)
        data = None
        if request.payload is not None:
            for name, value in request.payload.metadata.to_headers().items():
                headers.setdefault(name, value)
            data = request.payload.read_all()

        native = self._session.request(
            request.method,
            request.endpoint,
            headers=headers,
            data=data,
            timeout=(self.config.connect_timeout, self.config.read_timeout),
            allow_redirects=False,
            verify=not self.config.trust_all_certs,
        )
        payload = None
        if native.content:
            payload = Payload(
                native.content,
                ContentMetadata(content_type=native.headers.get("Content-Type")),
            )
        return HttpResponse(
            status_code=native.status_code,
            message=native.reason or "",
            headers=native.headers,
            payload=payload,
        )

    def close(self) -> None:
        self._session.close()
