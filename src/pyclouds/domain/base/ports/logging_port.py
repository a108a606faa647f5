"""Logging seam between services and the logging backend."""

from abc import ABC, abstractmethod
from typing import Any


class LoggingPort(ABC):
    """
    What services need from a logger.

    Messages use ``%``-style arguments. ``bind`` returns a logger that attaches
    the given key/value pairs to every record, e.g. the provider or container
    an operation concerns.
    """

    @abstractmethod
    def debug(self, message: str, *args: Any) -> None: ...

    @abstractmethod
    def info(self, message: str, *args: Any) -> None: ...

    @abstractmethod
    def warning(self, message: str, *args: Any) -> None: ...

    @abstractmethod
    def error(self, message: str, *args: Any) -> None: ...

    @abstractmethod
    def bind(self, **context: Any) -> "LoggingPort": ...

    @abstractmethod
    def critical(self, message: str, *args: Any) -> None: ...

    @abstractmethod
    def exception(self, message: str, *args: Any) -> None:
        """Log at ERROR with the traceback of the exception being handled."""

    @abstractmethod
    def log(self, level: int, message: str, *args: Any) -> None: ...
