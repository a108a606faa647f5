"""Follow 3xx responses by rewriting the command's current request."""

from typing import Optional
from urllib.parse import urljoin, urlsplit

from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.base import HttpRetryHandler
from pyclouds.infrastructure.http.models import HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

REDIRECT_CODES = frozenset({301, 302, 303, 307, 308})
_CONTENT_HEADERS = (
    "Content-Type",
    "Content-Length",
    "Content-MD5",
    "Content-Encoding",
    "Content-Disposition",
    "Content-Language",
)


class RedirectionRetryHandler(HttpRetryHandler):
    """
    Retry a redirected command against the ``Location`` it was sent to.

    A redirect back to the same URL is treated as a request to slow down and
    goes through exponential backoff before retrying.
    """

    def __init__(
        self,
        backoff_handler: Optional[BackoffLimitedRetryHandler] = None,
        retry_count_limit: int = 5,
    ) -> None:
        self.backoff_handler = backoff_handler or BackoffLimitedRetryHandler()
        self.retry_count_limit = retry_count_limit

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        if response.status_code not in REDIRECT_CODES:
            return False
        if not command.is_replayable():
            logger.error("Cannot retry after redirect, command is not replayable: %s", command)
            return False

        location = response.get_first_header_or_none("Location")
        if not location:
            logger.error("Cannot retry after redirect, no host information: %s", command)
            return False

        if command.increment_redirect_count() > self.retry_count_limit:
            logger.error(
                "Cannot retry after redirect, command exceeded retry limit %d: %s",
                self.retry_count_limit,
                command,
            )
            return False

        current = command.current_request
        redirect = urljoin(current.endpoint, location)
        if redirect == current.endpoint:
            self.backoff_handler.impose_backoff_exponential_delay(
                command.redirect_count, f"redirect: {command}"
            )
            return True

        request = current.replace(endpoint=redirect)
        if urlsplit(redirect).netloc != urlsplit(current.endpoint).netloc:
            request = request.without_header("Host")

        if response.status_code == 303 and current.method != "HEAD":
            request = request.replace(method="GET", payload=None)
            for header in _CONTENT_HEADERS:
                request = request.without_header(header)

        logger.debug("Following redirect %d to %s", response.status_code, redirect)
        command.set_current_request(request)
        return True
