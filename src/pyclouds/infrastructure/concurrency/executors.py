"""Thread pools owned by a context and the closer that shuts them down."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional, Protocol

from pyclouds.config.schemas import PyCloudsConfig
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class Closeable(Protocol):
    def close(self) -> None: ...


class ExecutorFactory:
    """Build the executors a context needs from configuration."""

    def __init__(self, config: Optional[PyCloudsConfig] = None) -> None:
        self.config = config or PyCloudsConfig()

    def create_user_executor(self) -> ThreadPoolExecutor:
        logger.debug("Creating user executor with %d threads", self.config.user_threads)
        return ThreadPoolExecutor(
            max_workers=self.config.user_threads, thread_name_prefix="pyclouds-user"
        )


class ExecutorCloseable:
    """Adapt an executor to ``close()``."""

    def __init__(self, executor: ThreadPoolExecutor, wait: bool = True) -> None:
        self.executor = executor
        self.wait = wait

    def close(self) -> None:
        self.executor.shutdown(wait=self.wait, cancel_futures=True)


class Closer:
    """
    Close registered resources in reverse registration order.

    Every resource is closed even if an earlier one fails; the first failure
    is re-raised afterwards. Closing twice does nothing.
    """

    def __init__(self) -> None:
        self._resources: list[Closeable] = []
        self._closed = False
        self._lock = threading.Lock()

    def add_to_close(self, resource: Closeable) -> Closeable:
        with self._lock:
            if self._closed:
                raise RuntimeError("closer is already closed")
            self._resources.append(resource)
        return resource

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            resources = list(reversed(self._resources))
            self._resources.clear()

        first_error: Optional[Exception] = None
        for resource in resources:
            try:
                resource.close()
            except Exception as e:
                logger.error("Error closing %r: %s", resource, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def __enter__(self) -> "Closer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
