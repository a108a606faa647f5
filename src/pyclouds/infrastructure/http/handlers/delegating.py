"""Route retry and error decisions by status code family."""

from collections.abc import Sequence
from typing import Optional

from pyclouds.config.schemas import HttpConfig
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.base import HttpErrorHandler, HttpRetryHandler, NeverRetry
from pyclouds.infrastructure.http.handlers.mapping import MapHttp4xxCodesToExceptions
from pyclouds.infrastructure.http.handlers.rate_limit import RateLimitRetryHandler
from pyclouds.infrastructure.http.handlers.redirection import RedirectionRetryHandler
from pyclouds.infrastructure.http.handlers.renew import InvalidatableCache, RetryOnRenew
from pyclouds.infrastructure.http.models import HttpResponse


class DelegatingRetryHandler(HttpRetryHandler):
    """
    3xx goes to the redirection handler, 4xx to the client error handler and
    5xx to the server error handler.

    Client errors are not retried unless a provider plugs in its own handler.
    """

    def __init__(
        self,
        redirection_retry_handler: Optional[HttpRetryHandler] = None,
        client_error_retry_handler: Optional[HttpRetryHandler] = None,
        server_error_retry_handler: Optional[HttpRetryHandler] = None,
    ) -> None:
        backoff = BackoffLimitedRetryHandler()
        self.redirection_retry_handler = redirection_retry_handler or RedirectionRetryHandler(backoff)
        self.client_error_retry_handler = client_error_retry_handler or NeverRetry()
        self.server_error_retry_handler = server_error_retry_handler or backoff

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        status = response.status_code
        if 300 <= status < 400:
            return self.redirection_retry_handler.should_retry_request(command, response)
        if 400 <= status < 500:
            return self.client_error_retry_handler.should_retry_request(command, response)
        if status >= 500:
            return self.server_error_retry_handler.should_retry_request(command, response)
        return False


class ChainedRetryHandler(HttpRetryHandler):
    """Ask each handler in turn; retry on the first that says yes."""

    def __init__(self, handlers: Sequence[HttpRetryHandler]) -> None:
        self.handlers = tuple(handlers)

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        return any(h.should_retry_request(command, response) for h in self.handlers)


class DelegatingErrorHandler(HttpErrorHandler):
    def __init__(
        self,
        redirection_error_handler: Optional[HttpErrorHandler] = None,
        client_error_handler: Optional[HttpErrorHandler] = None,
        server_error_handler: Optional[HttpErrorHandler] = None,
    ) -> None:
        default = MapHttp4xxCodesToExceptions()
        self.redirection_error_handler = redirection_error_handler or default
        self.client_error_handler = client_error_handler or default
        self.server_error_handler = server_error_handler or default

    def handle_error(self, command: HttpCommand, response: HttpResponse) -> None:
        status = response.status_code
        if 300 <= status < 400:
            self.redirection_error_handler.handle_error(command, response)
        elif 400 <= status < 500:
            self.client_error_handler.handle_error(command, response)
        else:
            self.server_error_handler.handle_error(command, response)


def retry_handler_from_config(
    config: Optional[HttpConfig] = None,
    auth_cache: Optional[InvalidatableCache] = None,
    backoff: Optional[BackoffLimitedRetryHandler] = None,
) -> DelegatingRetryHandler:
    """
    Build the standard retry handler for ``config``.

    Redirects are followed up to ``max_redirects`` and server errors back off
    up to ``max_retries``. Client errors wait out 429 responses for at most
    ``max_rate_limit_wait`` seconds and, when ``auth_cache`` is given, a 401
    invalidates it so the retried request authenticates again.
    """
    config = config or HttpConfig()
    backoff = backoff or BackoffLimitedRetryHandler(
        retry_count_limit=config.max_retries, delay_start=config.retry_delay_start
    )
    client_handlers: list[HttpRetryHandler] = [
        RateLimitRetryHandler(
            retry_count_limit=config.max_retries, max_rate_limit_wait=config.max_rate_limit_wait
        )
    ]
    if auth_cache is not None:
        client_handlers.append(RetryOnRenew(auth_cache, backoff_handler=backoff))
    return DelegatingRetryHandler(
        redirection_retry_handler=RedirectionRetryHandler(
            backoff, retry_count_limit=config.max_redirects
        ),
        client_error_retry_handler=ChainedRetryHandler(client_handlers),
        server_error_retry_handler=backoff,
    )
