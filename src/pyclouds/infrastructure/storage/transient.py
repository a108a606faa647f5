"""In-memory storage strategy."""

import hashlib
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from pyclouds.domain.base.payload import Payload
from pyclouds.domain.base.ports.storage_port import LocalStorageStrategy
from pyclouds.domain.blobstore.exceptions import BlobError, ContainerNotFoundError, KeyNotFoundError
from pyclouds.domain.blobstore.models import (
    Blob,
    BlobAccess,
    ContainerAccess,
    ListContainerOptions,
    StorageMetadata,
    StorageType,
)
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def matches_options(key: str, options: Optional[ListContainerOptions], separator: str = "/") -> bool:
    """Whether ``key`` falls inside the directory or prefix selected by ``options``."""
    if options is None:
        return True
    base = ""
    if options.dir:
        base = options.dir if options.dir.endswith(separator) else options.dir + separator
    elif options.prefix:
        base = options.prefix
    if not key.startswith(base):
        return False
    return options.recursive or separator not in key[len(base) :]


def store_payload(blob: Blob) -> tuple[bytes, str]:
    """Read a blob's payload fully, verifying any supplied Content-MD5."""
    if blob.payload is None:
        data = b""
    else:
        data = blob.payload.read_all()
        blob.payload.release()
    actual = hashlib.md5(data).hexdigest()
    expected = blob.metadata.content_metadata.content_md5
    if blob.payload is not None and blob.payload.metadata.content_md5:
        expected = blob.payload.metadata.content_md5
    if expected and expected.lower() != actual:
        raise BlobError(
            f"MD5 hash code mismatch, actual: {actual} expected: {expected}",
            details={"blob": blob.name},
        )
    return data, actual


class TransientStorageStrategy(LocalStorageStrategy):
    """Thread-safe dictionary-backed storage. Contents are lost with the process."""

    def __init__(self, default_location: Optional[str] = None) -> None:
        self.default_location = default_location
        self._lock = threading.RLock()
        self._blobs: dict[str, dict[str, Blob]] = {}
        self._blob_access: dict[str, dict[str, BlobAccess]] = {}
        self._container_metadata: dict[str, StorageMetadata] = {}
        self._container_access: dict[str, ContainerAccess] = {}

    def container_exists(self, container: str) -> bool:
        with self._lock:
            return container in self._blobs

    def get_all_container_names(self) -> Iterable[str]:
        with self._lock:
            return sorted(self._blobs)

    def create_container(
        self, container: str, location: Optional[str] = None, public_read: bool = False
    ) -> bool:
        with self._lock:
            if container in self._blobs:
                return False
            self._blobs[container] = {}
            self._blob_access[container] = {}
            self._container_metadata[container] = StorageMetadata(
                type=StorageType.CONTAINER,
                name=container,
                location=location or self.default_location,
                creation_date=datetime.now(timezone.utc),
            )
            self._container_access[container] = (
                ContainerAccess.PUBLIC_READ if public_read else ContainerAccess.PRIVATE
            )
            return True

    def delete_container(self, container: str) -> None:
        with self._lock:
            self._blobs.pop(container, None)
            self._blob_access.pop(container, None)
            self._container_metadata.pop(container, None)
            self._container_access.pop(container, None)

    def clear_container(
        self, container: str, options: Optional[ListContainerOptions] = None
    ) -> None:
        options = options or ListContainerOptions(recursive=True)
        with self._lock:
            blobs = self._container(container)
            for key in [k for k in blobs if matches_options(k, options, self.get_separator())]:
                del blobs[key]
                self._blob_access[container].pop(key, None)

    def get_container_metadata(self, container: str) -> Optional[StorageMetadata]:
        with self._lock:
            metadata = self._container_metadata.get(container)
            return metadata.model_copy(deep=True) if metadata else None

    def get_container_access(self, container: str) -> ContainerAccess:
        with self._lock:
            return self._container_access.get(container, ContainerAccess.PRIVATE)

    def set_container_access(self, container: str, access: ContainerAccess) -> None:
        with self._lock:
            self._container(container)
            self._container_access[container] = access

    def blob_exists(self, container: str, key: str) -> bool:
        with self._lock:
            return key in self._blobs.get(container, {})

    def get_blob_keys_inside_container(self, container: str) -> Iterable[str]:
        with self._lock:
            return list(self._container(container))

    def get_blob(self, container: str, key: str) -> Optional[Blob]:
        with self._lock:
            stored = self._blobs.get(container, {}).get(key)
            if stored is None:
                return None
            data = stored.payload.read_all() if stored.payload else b""
            metadata = stored.metadata.model_copy(deep=True)
        return Blob(metadata=metadata, payload=Payload(data, metadata.content_metadata.model_copy()))

    def put_blob(self, container: str, blob: Blob) -> str:
        data, etag = store_payload(blob)
        metadata = blob.metadata.model_copy(deep=True)
        content = metadata.content_metadata
        if blob.payload is not None:
            content = blob.payload.metadata.model_copy()
            for field in ("content_type", "content_disposition", "content_encoding",
                          "content_language", "cache_control"):
                if getattr(content, field) is None:
                    setattr(content, field, getattr(metadata.content_metadata, field))
        content.content_length = len(data)
        content.content_md5 = etag
        metadata.content_metadata = content
        metadata.container = container
        metadata.uri = f"mem://{container}/{metadata.name}"
        metadata.last_modified = datetime.now(timezone.utc)
        metadata.size = len(data)
        metadata.etag = etag
        if metadata.name.endswith(self.get_separator()) and not data:
            metadata.type = StorageType.FOLDER

        with self._lock:
            blobs = self._container(container)
            blobs[metadata.name] = Blob(metadata=metadata, payload=Payload(data))
            self._blob_access[container][metadata.name] = BlobAccess.PRIVATE
        return etag

    def remove_blob(self, container: str, key: str) -> None:
        with self._lock:
            blobs = self._blobs.get(container)
            if blobs is not None:
                blobs.pop(key, None)
                self._blob_access[container].pop(key, None)

    def get_blob_access(self, container: str, key: str) -> BlobAccess:
        with self._lock:
            access = self._blob_access.get(container)
            if access is None:
                raise ContainerNotFoundError(container, f"container {container} not found in get_blob_access")
            if key not in access:
                raise KeyNotFoundError(container, key, f"{container}/{key} not found in get_blob_access")
            return access[key]

    def set_blob_access(self, container: str, key: str, access: BlobAccess) -> None:
        with self._lock:
            access_map = self._blob_access.get(container)
            if access_map is None:
                raise ContainerNotFoundError(container, f"container {container} not found in set_blob_access")
            access_map[key] = access

    def _container(self, container: str) -> dict[str, Blob]:
        blobs = self._blobs.get(container)
        if blobs is None:
            raise ContainerNotFoundError(container)
        return blobs
