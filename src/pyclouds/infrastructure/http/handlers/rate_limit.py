"""Wait out HTTP 429 responses when the server says how long to wait."""

import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.handlers.base import HttpRetryHandler
from pyclouds.infrastructure.http.models import HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

RETRY_AFTER = "Retry-After"
RATE_LIMIT_RESET = "X-RateLimit-Reset"


class RateLimitRetryHandler(HttpRetryHandler):
    """Retry a rate limited command after the period the server advertises."""

    def __init__(self, retry_count_limit: int = 5, max_rate_limit_wait: float = 120.0) -> None:
        self.retry_count_limit = retry_count_limit
        self.max_rate_limit_wait = max_rate_limit_wait

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        if response.status_code != 429:
            return False
        return self._delay_request_until_allowed(command, response)

    def _delay_request_until_allowed(self, command: HttpCommand, response: HttpResponse) -> bool:
        if not command.is_replayable():
            logger.error("Cannot retry after rate limit error, command is not replayable: %s", command)
            return False

        if command.increment_failure_count() > self.retry_count_limit:
            logger.error(
                "Cannot retry after rate limit error, command has exceeded retry limit %d: %s",
                self.retry_count_limit,
                command,
            )
            return False

        wait = self.seconds_to_next_available_request(command, response)
        if wait is None:
            return False
        if wait > self.max_rate_limit_wait:
            logger.error(
                "Max wait for rate limited requests is %s seconds but need to wait %s seconds, aborting",
                self.max_rate_limit_wait,
                wait,
            )
            return False

        logger.debug("Waiting %s seconds before retrying, as defined by the rate limit", wait)
        time.sleep(wait)
        return True

    def seconds_to_next_available_request(
        self, command: HttpCommand, response: HttpResponse
    ) -> Optional[float]:
        """Read the wait time from ``Retry-After`` or ``X-RateLimit-Reset``."""
        retry_after = response.get_first_header_or_none(RETRY_AFTER)
        if retry_after:
            return _parse_retry_after(retry_after.strip())

        reset = response.get_first_header_or_none(RATE_LIMIT_RESET)
        if reset:
            try:
                return max(0.0, float(reset) - time.time())
            except ValueError:
                logger.warning("Ignoring unparseable %s header: %s", RATE_LIMIT_RESET, reset)
        return None


def _parse_retry_after(value: str) -> Optional[float]:
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unparseable %s header: %s", RETRY_AFTER, value)
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())
