"""Global test configuration and fixtures."""

import os
import sys
from collections.abc import Generator
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.infrastructure.registry.provider_registry import reset_provider_registry


@pytest.fixture(autouse=True)
def clean_pyclouds_environment(monkeypatch) -> None:
    """Keep PYCLOUDS_ variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.startswith("PYCLOUDS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def aws_credentials(monkeypatch) -> None:
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_logger() -> Mock:
    return Mock(spec=LoggingPort)


@pytest.fixture
def no_sleep() -> Generator[Mock, None, None]:
    """Make every time.sleep return immediately and record the requested delays."""
    with patch("time.sleep") as sleep:
        yield sleep


@pytest.fixture
def fresh_registry() -> Generator[None, None, None]:
    """Rebuild the process-wide provider registry around a test."""
    reset_provider_registry()
    yield
    reset_provider_registry()
