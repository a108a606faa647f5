"""Structured logging setup built on structlog and the stdlib logging module."""

import logging
import os
import sys
from typing import Optional

import structlog

ROOT_LOGGER_NAME = "pyclouds"


def setup_logging(
    log_level: Optional[str] = None,
    log_destination: Optional[str] = None,
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> logging.Logger:
    """
    Set up structured logging for the library.

    :param log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    :param log_destination: Where to send logs ("file", "stdout", or "both").
    :param log_file: Path of the log file when logging to a file.
    :param json_format: Render records as JSON instead of key/value console output.
    :return: The configured root ``pyclouds`` logger.
    """
    log_level = log_level or os.environ.get("PYCLOUDS_LOG_LEVEL", "INFO")
    log_destination = log_destination or os.environ.get("PYCLOUDS_LOG_DESTINATION", "stdout")

    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handlers: list[logging.Handler] = []
    if log_destination in ("file", "both"):
        if not log_file:
            raise ValueError("log_file is required when logging to a file")
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    if log_destination in ("stdout", "both"):
        handlers.append(logging.StreamHandler(sys.stdout))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a stdlib logger placed under the ``pyclouds`` hierarchy."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)

