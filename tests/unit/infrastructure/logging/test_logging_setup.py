"""Unit tests for logging setup and the logging adapter."""

import json
import logging

import pytest

from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter
from pyclouds.infrastructure.logging.logger import ROOT_LOGGER_NAME, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    root.propagate = propagate


@pytest.mark.unit
class TestLogging:
    """Test cases for setup_logging and get_logger."""

    def test_loggers_live_under_package_root(self):
        assert get_logger("http.executor").name == "pyclouds.http.executor"
        assert get_logger("pyclouds.context").name == "pyclouds.context"
        assert get_logger("pyclouds").name == "pyclouds"

    def test_stdout_by_default(self):
        root = setup_logging(log_level="debug")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert not root.propagate

    def test_repeated_setup_replaces_handlers(self):
        setup_logging()
        root = setup_logging()

        assert len(root.handlers) == 1

    def test_json_file_output(self, tmp_path):
        log_file = tmp_path / "logs" / "pyclouds.log"
        setup_logging(log_level="INFO", log_destination="file", log_file=str(log_file), json_format=True)

        get_logger("test").info("created %d nodes", 3)
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        record = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert record["event"] == "created 3 nodes"
        assert record["level"] == "info"
        assert record["logger"] == "pyclouds.test"

    def test_file_destination_requires_path(self):
        with pytest.raises(ValueError):
            setup_logging(log_destination="file")

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("PYCLOUDS_LOG_LEVEL", "WARNING")

        assert setup_logging().level == logging.WARNING


@pytest.mark.unit
class TestLoggingAdapter:
    def test_adapter_forwards_to_named_logger(self, caplog):
        adapter = LoggingAdapter("pyclouds.adapter-test")
        logging.getLogger(ROOT_LOGGER_NAME).propagate = True

        with caplog.at_level(logging.INFO, logger="pyclouds.adapter-test"):
            adapter.info("hello %s", "world")
            adapter.debug("hidden")

        assert adapter.name == "pyclouds.adapter-test"
        assert [r.getMessage() for r in caplog.records] == ["hello world"]

    def test_critical_and_log_levels(self, caplog):
        adapter = LoggingAdapter("pyclouds.adapter-test")
        logging.getLogger(ROOT_LOGGER_NAME).propagate = True

        with caplog.at_level(logging.INFO, logger="pyclouds.adapter-test"):
            adapter.critical("disk %s", "full")
            adapter.log(logging.WARNING, "slow %d", 3)

        assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
            (logging.CRITICAL, "disk full"),
            (logging.WARNING, "slow 3"),
        ]

    def test_exception_attaches_traceback(self, caplog):
        adapter = LoggingAdapter("pyclouds.adapter-test")
        logging.getLogger(ROOT_LOGGER_NAME).propagate = True

        with caplog.at_level(logging.ERROR, logger="pyclouds.adapter-test"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                adapter.exception("failed %s", "upload")

        (record,) = caplog.records
        assert record.levelno == logging.ERROR
        assert record.getMessage() == "failed upload"
        assert record.exc_info[0] is RuntimeError

    def test_bind_merges_context_and_drops_none(self):
        adapter = LoggingAdapter("pyclouds.compute", provider="stub", region=None)

        bound = adapter.bind(group="web")

        assert adapter.context == {"provider": "stub"}
        assert bound.context == {"provider": "stub", "group": "web"}
        assert bound.name == "pyclouds.compute"

    def test_bound_context_rendered_as_fields(self, tmp_path):
        log_file = tmp_path / "pyclouds.log"
        setup_logging(log_destination="file", log_file=str(log_file), json_format=True)

        LoggingAdapter("pyclouds.compute", provider="stub").info("<< running %d nodes", 2)
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        record = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert record["event"] == "<< running 2 nodes"
        assert record["provider"] == "stub"
