"""Parallel, bounded deletion of every key matched by a listing."""

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Optional, Protocol

from pyclouds.config.schemas import BlobStoreConfig
from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.domain.blobstore.exceptions import BlobError, ContainerNotFoundError
from pyclouds.domain.blobstore.models import (
    ListContainerOptions,
    PageSet,
    StorageMetadata,
    StorageType,
)
from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler


class ListingBlobStore(Protocol):
    def list(
        self, container: str, options: Optional[ListContainerOptions] = None
    ) -> PageSet[StorageMetadata]: ...

    def remove_blob(self, container: str, key: str) -> None: ...

    def remove_directory_marker(self, container: str, directory: str) -> None: ...


class _SemaphoreTimeout(Exception):
    pass


class DeleteAllKeysInList:
    """
    Clear a container, or a directory inside it, page by page.

    At most ``max_parallel_deletes`` deletes are in flight. If no slot frees
    up within ``max_time`` seconds the outstanding deletes are cancelled and
    the pass counts as failed. A failed pass is repeated with backoff, up to
    ``max_errors`` passes in total, after which ``BlobError`` is raised.
    """

    def __init__(
        self,
        blobstore: ListingBlobStore,
        executor: Optional[Executor] = None,
        retry_handler: Optional[BackoffLimitedRetryHandler] = None,
        config: Optional[BlobStoreConfig] = None,
        logger: Optional[LoggingPort] = None,
    ) -> None:
        config = config or BlobStoreConfig()
        self.blobstore = blobstore
        self.executor = executor
        self.retry_handler = retry_handler or BackoffLimitedRetryHandler()
        self.max_parallel_deletes = config.max_parallel_deletes
        self.max_time: Optional[float] = config.request_timeout
        self.max_errors = config.max_errors
        self._logger = logger or LoggingAdapter(__name__)

    def execute(self, container: str, options: Optional[ListContainerOptions] = None) -> None:
        options = options or ListContainerOptions(recursive=True)
        if self.executor is not None:
            self._execute(self.executor, container, options)
            return
        with ThreadPoolExecutor(
            max_workers=self.max_parallel_deletes, thread_name_prefix="blob-delete"
        ) as executor:
            self._execute(executor, container, options)

    def _execute(self, executor: Executor, container: str, options: ListContainerOptions) -> None:
        semaphore = threading.Semaphore(self.max_parallel_deletes)
        outstanding: set[Future[Any]] = set()
        outstanding_lock = threading.Lock()
        failure = threading.Event()
        state = _PassState(executor, semaphore, outstanding, outstanding_lock, failure)

        retries = self.max_errors
        while retries > 0:
            failure.clear()
            self.execute_one_iteration(container, options.model_copy(), state, blocking=False)
            self._wait_for_completion(state)

            if not failure.is_set():
                break
            retries -= 1
            if retries > 0:
                self.retry_handler.impose_backoff_exponential_delay(
                    self.max_errors - retries, self._message(container, options)
                )

        if retries == 0:
            self._cancel_outstanding(state)
            raise BlobError(
                "Exceeded maximum retry attempts",
                details={"container": container, "max_errors": self.max_errors},
            )

    def execute_one_iteration(
        self,
        container: str,
        options: ListContainerOptions,
        state: "_PassState",
        blocking: bool,
    ) -> None:
        message = self._message(container, options)
        if options.recursive:
            message += " recursively"
        self._logger.debug(message)

        listing = self._get_listing(container, options, state)
        while listing:
            try:
                self._delete_blobs_and_empty_dirs(container, options, listing, state)
            except _SemaphoreTimeout as e:
                self._logger.debug("Timeout while deleting blobs: %s", e)
                self._cancel_outstanding(state)
                state.failure.set()

            if listing.next_marker is None:
                break
            self._logger.debug("%s with marker %s", message, listing.next_marker)
            options = options.after_marker(listing.next_marker)
            listing = self._get_listing(container, options, state)

        if blocking:
            self._wait_for_completion(state)

    def _get_listing(
        self, container: str, options: ListContainerOptions, state: "_PassState"
    ) -> Optional[PageSet[StorageMetadata]]:
        try:
            listing = self.blobstore.list(container, options)
        except ContainerNotFoundError:
            return None

        if options.recursive:
            for md in listing:
                if md.type == StorageType.CONTAINER:
                    raise ValueError("Container type not supported")
                if md.type in (StorageType.FOLDER, StorageType.RELATIVE_PATH):
                    full_path = self._full_path(options, md).rstrip("/")
                    if full_path != (options.dir or "").rstrip("/"):
                        self.execute_one_iteration(
                            container, options.in_directory(full_path), state, blocking=True
                        )
        return listing

    def _delete_blobs_and_empty_dirs(
        self,
        container: str,
        options: ListContainerOptions,
        listing: PageSet[StorageMetadata],
        state: "_PassState",
    ) -> None:
        for md in listing:
            full_path = self._full_path(options, md)
            if not state.semaphore.acquire(timeout=self.max_time):
                raise _SemaphoreTimeout("Timeout waiting for semaphore")

            future: Optional[Future[Any]] = None
            if md.type == StorageType.BLOB:
                future = state.executor.submit(self.blobstore.remove_blob, container, full_path)
            elif md.type in (StorageType.FOLDER, StorageType.RELATIVE_PATH):
                if options.recursive:
                    future = state.executor.submit(
                        self.blobstore.remove_directory_marker, container, full_path.rstrip("/")
                    )
            elif md.type == StorageType.CONTAINER:
                state.semaphore.release()
                raise ValueError("Container type not supported")

            if future is None:
                state.semaphore.release()
                continue

            with state.outstanding_lock:
                state.outstanding.add(future)
            future.add_done_callback(partial(self._on_done, state=state))

    def _on_done(self, future: Future[Any], state: "_PassState") -> None:
        with state.outstanding_lock:
            state.outstanding.discard(future)
        if future.cancelled() or future.exception() is not None:
            if not future.cancelled():
                self._logger.debug("Delete failed: %s", future.exception())
            state.failure.set()
        state.semaphore.release()

    def _wait_for_completion(self, state: "_PassState") -> None:
        for _ in range(self.max_parallel_deletes):
            state.semaphore.acquire()
        for _ in range(self.max_parallel_deletes):
            state.semaphore.release()

    @staticmethod
    def _cancel_outstanding(state: "_PassState") -> None:
        with state.outstanding_lock:
            futures = list(state.outstanding)
        for future in futures:
            future.cancel()

    @staticmethod
    def _full_path(options: ListContainerOptions, md: StorageMetadata) -> str:
        if options.dir and "/" not in md.name:
            return f"{options.dir.rstrip('/')}/{md.name}"
        return md.name

    @staticmethod
    def _message(container: str, options: ListContainerOptions) -> str:
        if options.dir:
            return f"clearing path {container}/{options.dir}"
        return f"clearing container {container}"


class _PassState:
    def __init__(
        self,
        executor: Executor,
        semaphore: threading.Semaphore,
        outstanding: set[Future[Any]],
        outstanding_lock: threading.Lock,
        failure: threading.Event,
    ) -> None:
        self.executor = executor
        self.semaphore = semaphore
        self.outstanding = outstanding
        self.outstanding_lock = outstanding_lock
        self.failure = failure
