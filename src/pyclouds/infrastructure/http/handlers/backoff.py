"""Exponential backoff bounded by a retry count."""

import time
from typing import Optional

from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.handlers.base import HttpRetryHandler, IOExceptionRetryHandler
from pyclouds.infrastructure.http.models import HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULT_RETRY_COUNT_LIMIT = 5
DEFAULT_DELAY_START = 0.05


class BackoffLimitedRetryHandler(HttpRetryHandler, IOExceptionRetryHandler):
    """
    Retry a replayable command with an exponentially growing delay.

    The delay for attempt ``n`` is ``delay_start * n ** 2``, capped at ten
    times ``delay_start``. With the defaults the five permitted retries sleep
    for 50, 200, 450, 500 and 500 milliseconds.

    The response body is never read here: a later error handler may still
    need it.
    """

    def __init__(
        self,
        retry_count_limit: int = DEFAULT_RETRY_COUNT_LIMIT,
        delay_start: float = DEFAULT_DELAY_START,
    ) -> None:
        if retry_count_limit < 0:
            raise ValueError("retry_count_limit cannot be negative")
        if delay_start < 0:
            raise ValueError("delay_start cannot be negative")
        self.retry_count_limit = retry_count_limit
        self.delay_start = delay_start

    def should_retry_request(self, command: HttpCommand, response: HttpResponse) -> bool:
        return self._if_replayable_backoff_and_return_true(command)

    def should_retry_request_on_error(self, command: HttpCommand, error: BaseException) -> bool:
        return self._if_replayable_backoff_and_return_true(command)

    def _if_replayable_backoff_and_return_true(self, command: HttpCommand) -> bool:
        if not command.is_replayable():
            logger.error("Cannot retry after server error, command is not replayable: %s", command)
            return False
        if command.increment_failure_count() > self.retry_count_limit:
            logger.error(
                "Cannot retry after server error, command has exceeded retry limit %d: %s",
                self.retry_count_limit,
                command,
            )
            return False
        self.impose_backoff_exponential_delay(command.failure_count, f"server error: {command}")
        return True

    def impose_backoff_exponential_delay(
        self,
        failure_count: int,
        message: str,
        period: Optional[float] = None,
        pow: int = 2,
        max_period: Optional[float] = None,
    ) -> float:
        """
        Sleep for ``min(period * failure_count ** pow, max_period)`` seconds.

        :return: the delay that was imposed, in seconds
        """
        period = self.delay_start if period is None else period
        max_period = period * 10 if max_period is None else max_period
        delay = min(period * failure_count**pow, max_period)
        logger.debug(
            "Retry %d/%d: delaying for %.3f s: %s",
            failure_count,
            self.retry_count_limit,
            delay,
            message,
        )
        time.sleep(delay)
        return delay
