"""Fixed-size pool that serializes provisioning work per group."""

import threading
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Generic, Optional, TypeVar

from pyclouds.domain.base.exceptions import IllegalStateError
from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter

T = TypeVar("T")


class ProvisioningJob(Generic[T]):
    """
    One unit of provisioning work for a group.

    When ``wait_until_ready`` is given it is applied to the group before and
    after ``operation`` runs; a False result raises ``IllegalStateError``.
    """

    def __init__(
        self,
        group: str,
        operation: Callable[[], T],
        wait_until_ready: Optional[Callable[[str], bool]] = None,
    ) -> None:
        if not group:
            raise ValueError("group is required")
        self.group = group
        self.operation = operation
        self.wait_until_ready = wait_until_ready

    def __call__(self) -> T:
        self._wait_for_group("before")
        result = self.operation()
        self._wait_for_group("after")
        return result

    def _wait_for_group(self, phase: str) -> None:
        if self.wait_until_ready is not None and not self.wait_until_ready(self.group):
            raise IllegalStateError(
                f"group {self.group} was not ready {phase} running {self.operation!r}",
                details={"group": self.group},
            )

    def __repr__(self) -> str:
        return f"ProvisioningJob(group={self.group!r}, operation={self.operation!r})"


class ProvisioningManager:
    """
    Run provisioning jobs on a bounded thread pool.

    Jobs for the same group run one at a time in submission order; jobs for
    different groups run concurrently up to ``max_workers``. Once closed,
    new submissions are dropped with a warning and ``provision`` returns None.
    """

    def __init__(self, max_workers: int = 1, logger: Optional[LoggingPort] = None) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be positive")
        self._logger = logger or LoggingAdapter(__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="provisioning"
        )
        self._lock = threading.Lock()
        self._queues: dict[str, deque[tuple[ProvisioningJob[Any], Future[Any]]]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def provision(self, job: ProvisioningJob[T]) -> Optional[Future[T]]:
        future: Future[T] = Future()
        with self._lock:
            if self._closed:
                self._logger.warning("Provisioning manager closed; ignoring job %s", job)
                return None
            queue = self._queues.get(job.group)
            start_drain = queue is None
            if queue is None:
                queue = self._queues[job.group] = deque()
            queue.append((job, future))
            if start_drain:
                self._executor.submit(self._drain, job.group)
        self._logger.debug(">> submitted %s", job)
        return future

    def provision_all(self, jobs: Iterable[ProvisioningJob[Any]]) -> list[Optional[Future[Any]]]:
        return [self.provision(job) for job in jobs]

    def _drain(self, group: str) -> None:
        while True:
            with self._lock:
                queue = self._queues.get(group)
                if not queue:
                    self._queues.pop(group, None)
                    return
                job, future = queue.popleft()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = job()
            except BaseException as e:
                self._logger.debug("<< failed %s: %s", job, e)
                future.set_exception(e)
            else:
                self._logger.debug("<< completed %s", job)
                future.set_result(result)

    def close(self) -> None:
        """Stop accepting jobs and cancel those not yet started. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = [future for queue in self._queues.values() for _, future in queue]
            for queue in self._queues.values():
                queue.clear()
        for future in pending:
            future.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._logger.debug("Provisioning manager closed, cancelled %d pending jobs", len(pending))

    def __enter__(self) -> "ProvisioningManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
