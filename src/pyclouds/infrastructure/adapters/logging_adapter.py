"""``LoggingPort`` over the ``pyclouds`` stdlib logger hierarchy."""

import logging
from typing import Any

from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.infrastructure.logging.logger import get_logger


class LoggingAdapter(LoggingPort):
    """
    Forwards to a stdlib logger, passing bound context as record extras.

    ``setup_logging`` renders those extras as fields of the structured record.
    Context values that are None are not attached.
    """

    def __init__(self, name: str = "pyclouds", **context: Any) -> None:
        self._logger = get_logger(name)
        self._context = {k: v for k, v in context.items() if v is not None}

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **context: Any) -> "LoggingAdapter":
        return LoggingAdapter(self._logger.name, **{**self._context, **context})

    def _log(
        self, level: int, message: str, args: tuple[Any, ...], exc_info: bool = False
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        # stacklevel 3 attributes the record to the service calling the adapter
        self._logger.log(
            level,
            message,
            *args,
            exc_info=exc_info,
            extra=self._context or None,
            stacklevel=3,
        )

    def debug(self, message: str, *args: Any) -> None:
        self._log(logging.DEBUG, message, args)

    def info(self, message: str, *args: Any) -> None:
        self._log(logging.INFO, message, args)

    def warning(self, message: str, *args: Any) -> None:
        self._log(logging.WARNING, message, args)

    def error(self, message: str, *args: Any) -> None:
        self._log(logging.ERROR, message, args)

    def critical(self, message: str, *args: Any) -> None:
        self._log(logging.CRITICAL, message, args)

    def exception(self, message: str, *args: Any) -> None:
        self._log(logging.ERROR, message, args, exc_info=True)

    def log(self, level: int, message: str, *args: Any) -> None:
        self._log(level, message, args)
