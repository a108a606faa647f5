"""Domain ports."""

from pyclouds.domain.base.ports.compute_port import ComputeServiceAdapter
from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.domain.base.ports.storage_port import LocalStorageStrategy

__all__ = ["ComputeServiceAdapter", "LocalStorageStrategy", "LoggingPort"]
