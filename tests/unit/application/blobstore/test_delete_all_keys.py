"""Unit tests for parallel container clearing."""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from pyclouds.application.blobstore.delete_all_keys import DeleteAllKeysInList
from pyclouds.application.blobstore.local_blob_store import LocalBlobStore
from pyclouds.config.schemas import BlobStoreConfig
from pyclouds.domain.blobstore.exceptions import BlobError, ContainerNotFoundError
from pyclouds.domain.blobstore.models import (
    Blob,
    BlobMetadata,
    ListContainerOptions,
    PageSet,
)
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.storage.transient import TransientStorageStrategy


class FlakyBlobStore:
    """Lists a fixed set of keys and fails the first ``failures`` deletes of each."""

    def __init__(self, keys, failures=0):
        self.keys = set(keys)
        self.failures = {key: failures for key in keys}
        self.lock = threading.Lock()
        self.list_calls = 0

    def list(self, container, options=None):
        with self.lock:
            self.list_calls += 1
            return PageSet([BlobMetadata(name=k) for k in sorted(self.keys)])

    def remove_blob(self, container, key):
        with self.lock:
            if self.failures[key] > 0:
                self.failures[key] -= 1
                raise OSError(f"could not delete {key}")
            self.keys.discard(key)

    def remove_directory_marker(self, container, directory):
        pass


@pytest.mark.unit
class TestDeleteAllKeysInList:
    """Test cases for DeleteAllKeysInList."""

    def setup_method(self):
        self.retry_handler = Mock(spec=BackoffLimitedRetryHandler)
        self.config = BlobStoreConfig(max_parallel_deletes=2, max_errors=3)

    def _strategy(self, blobstore, executor=None):
        return DeleteAllKeysInList(
            blobstore, executor=executor, retry_handler=self.retry_handler, config=self.config
        )

    def test_deletes_everything(self):
        blobstore = FlakyBlobStore([f"key-{n}" for n in range(20)])

        self._strategy(blobstore).execute("c")

        assert blobstore.keys == set()
        self.retry_handler.impose_backoff_exponential_delay.assert_not_called()

    def test_failed_pass_is_retried_with_backoff(self):
        blobstore = FlakyBlobStore(["a", "b"], failures=1)

        self._strategy(blobstore).execute("c")

        assert blobstore.keys == set()
        assert blobstore.list_calls == 2
        self.retry_handler.impose_backoff_exponential_delay.assert_called_once()
        assert self.retry_handler.impose_backoff_exponential_delay.call_args.args[0] == 1

    def test_gives_up_after_max_errors(self):
        blobstore = FlakyBlobStore(["a"], failures=10)

        with pytest.raises(BlobError, match="Exceeded maximum retry attempts"):
            self._strategy(blobstore).execute("c")

        assert blobstore.list_calls == 3
        assert self.retry_handler.impose_backoff_exponential_delay.call_count == 2

    def test_uses_supplied_executor(self):
        blobstore = FlakyBlobStore(["a", "b", "c"])
        with ThreadPoolExecutor(max_workers=2) as executor:
            self._strategy(blobstore, executor).execute("c")

        assert blobstore.keys == set()

    def test_missing_container_is_a_no_op(self):
        blobstore = Mock()
        blobstore.list.side_effect = ContainerNotFoundError("c")

        self._strategy(blobstore).execute("c")

        blobstore.remove_blob.assert_not_called()


@pytest.mark.unit
class TestClearingThroughBlobStore:
    """Clearing a real in-memory blobstore, including nested directories."""

    def setup_method(self):
        self.store = LocalBlobStore(
            TransientStorageStrategy(), config=BlobStoreConfig(default_max_results=3)
        )
        self.store.create_container_in_location("c")
        for key in ("top", "a/1", "a/2", "a/b/3", "a/b/c/4", "z/5"):
            self.store.put_blob("c", Blob.build(key, b"x"))
        self.store.create_directory("c", "a/b")

    def _all_names(self):
        names = []
        options = ListContainerOptions(recursive=True)
        while True:
            page = self.store.list("c", options)
            names.extend(md.name for md in page)
            if page.next_marker is None:
                return names
            options = options.after_marker(page.next_marker)

    def test_create_directory_skips_marker_when_keys_exist(self):
        assert self.store.directory_exists("c", "a/b")
        assert "a/b/" not in self._all_names()

    def test_recursive_clear(self):
        self.store.clear_container("c")

        assert self.store.count_blobs("c") == 0
        assert list(self.store.list("c", ListContainerOptions(recursive=True))) == []

    def test_clear_directory_recursively(self):
        self.store.delete_directory("c", "a")

        remaining = self._all_names()
        assert remaining == ["top", "z/5"]

    def test_non_recursive_clear_keeps_subdirectories(self):
        self.store.clear_container("c", ListContainerOptions(dir="a"))

        remaining = self._all_names()
        assert remaining == ["a/b/3", "a/b/c/4", "top", "z/5"]
