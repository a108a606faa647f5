"""Re-authenticate and retry when a token-authenticated request gets a 401."""

import threading
import time
import weakref
from typing import Optional, Protocol

from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.base import HttpRetryHandler, release_payload
from pyclouds.infrastructure.http.models import HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

AUTH_USER = "X-Auth-User"
AUTH_KEY = "X-Auth-Key"
AUTH_TOKEN = "X-Auth-Token"


class InvalidatableCache(Protocol):
    def invalidate_all(self) -> None: ...


class RetryOnRenew(HttpRetryHandler):
    """
    Invalidate cached authentication and retry on 401.

    Each command may be renewed ``retry_count_limit - 1`` times. Requests that
    are themselves authentication calls are never retried. A 408 is handed to
    the backoff handler.
    """

    def __init__(
        self,
        auth_cache: InvalidatableCache,
        backoff_handler: Optional[BackoffLimitedRetryHandler] = None,
        retry_count_limit: int = 5,
        renew_delay: float = 5.0,
    ) -> None:
        self.auth_cache = auth_cache
        self.backoff_handler = backoff_handler or BackoffLimitedRetryHandler()
        self.retry_count_limit = retry_count_limit
        self.renew_delay = renew_delay
        self._retry_counts: "weakref.WeakKeyDictionary[HttpCommand, int]" = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        if response.status_code == 408:
            return self.backoff_handler.should_retry_request(command, response)
        if response.status_code != 401:
            return False
        try:
            return self._renew(command)
        finally:
            release_payload(response)

    def _renew(self, command: HttpCommand) -> bool:
        if _is_authentication_request(command):
            return False

        with self._lock:
            count = self._retry_counts.get(command)
            if count is None:
                logger.debug("invalidating authentication token - first time for %s", command)
                self._retry_counts[command] = 1
                delay = 0.0
            elif count + 1 >= self.retry_count_limit:
                logger.debug("too many 401s - giving up after: %s for %s", count, command)
                return False
            else:
                logger.debug("invalidating authentication token - retry %s for %s", count, command)
                self._retry_counts[command] = count + 1
                delay = self.renew_delay

        self.auth_cache.invalidate_all()
        if delay:
            time.sleep(delay)
        return True

    def retry_count(self, command: HttpCommand) -> int:
        with self._lock:
            return self._retry_counts.get(command, 0)


def _is_authentication_request(command: HttpCommand) -> bool:
    headers = command.current_request.headers
    return AUTH_USER in headers and AUTH_KEY in headers and AUTH_TOKEN not in headers
