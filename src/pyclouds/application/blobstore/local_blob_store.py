"""Blobstore semantics layered over a ``LocalStorageStrategy``."""

from __future__ import annotations

import hashlib
import threading
import uuid
from collections.abc import Iterable
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Optional

from pyclouds.application.blobstore.delete_all_keys import DeleteAllKeysInList
from pyclouds.config.schemas import BlobStoreConfig
from pyclouds.domain.base.exceptions import IllegalStateError
from pyclouds.domain.base.payload import ContentMetadata, Payload
from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.domain.base.ports.storage_port import LocalStorageStrategy
from pyclouds.domain.blobstore.exceptions import (
    BlobPreconditionError,
    ContainerNotFoundError,
    KeyNotFoundError,
)
from pyclouds.domain.blobstore.models import (
    Blob,
    BlobAccess,
    BlobMetadata,
    ContainerAccess,
    GetOptions,
    ListContainerOptions,
    MultipartPart,
    MultipartUpload,
    PageSet,
    StorageMetadata,
    StorageType,
)
from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter
from pyclouds.infrastructure.io.payload_slicer import PayloadSlicer

DIRECTORY_CONTENT_TYPE = "application/directory"
DEFAULT_MAX_RESULTS = 1000
DEFAULT_PART_SIZE = 32 * 1024 * 1024


class LocalBlobStore:
    """
    Portable blobstore operations.

    Listing, directories, conditional reads, copying, clearing and multipart
    uploads are implemented here once; a storage strategy only has to store
    and fetch individual blobs.
    """

    def __init__(
        self,
        storage_strategy: LocalStorageStrategy,
        executor: Optional[Executor] = None,
        config: Optional[BlobStoreConfig] = None,
        logger: Optional[LoggingPort] = None,
    ) -> None:
        self.storage_strategy = storage_strategy
        self.config = config or BlobStoreConfig()
        self._logger = logger or LoggingAdapter(__name__)
        self._delete_all_keys = DeleteAllKeysInList(
            self, executor=executor, config=self.config, logger=self._logger
        )
        self._slicer = PayloadSlicer()
        self._uploads: dict[str, dict[int, tuple[MultipartPart, bytes]]] = {}
        self._uploads_lock = threading.Lock()

    def _container_not_found(self, container: str) -> ContainerNotFoundError:
        return ContainerNotFoundError(
            container,
            f"container {container} not in {list(self.storage_strategy.get_all_container_names())}",
        )

    def _check_container(self, container: str) -> None:
        if not self.storage_strategy.container_exists(container):
            raise self._container_not_found(container)

    # containers

    def container_exists(self, container: str) -> bool:
        return self.storage_strategy.container_exists(container)

    def list_containers(self) -> PageSet[StorageMetadata]:
        items = [
            md
            for md in (
                self.storage_strategy.get_container_metadata(name)
                for name in self.storage_strategy.get_all_container_names()
            )
            if md is not None
        ]
        return PageSet(items)

    def create_container_in_location(
        self, container: str, location: Optional[str] = None, public_read: bool = False
    ) -> bool:
        return self.storage_strategy.create_container(container, location, public_read)

    def delete_container(self, container: str) -> None:
        self.storage_strategy.delete_container(container)

    def delete_container_if_empty(self, container: str) -> bool:
        """Delete an empty container. Returns False if it still holds blobs."""
        if not self.storage_strategy.container_exists(container):
            return True
        if any(True for _ in self.storage_strategy.get_blob_keys_inside_container(container)):
            return False
        self.storage_strategy.delete_container(container)
        return True

    def clear_container(
        self, container: str, options: Optional[ListContainerOptions] = None
    ) -> None:
        """Remove every blob, recursively unless ``options`` says otherwise."""
        self._delete_all_keys.execute(container, options or ListContainerOptions(recursive=True))

    def get_container_access(self, container: str) -> ContainerAccess:
        return self.storage_strategy.get_container_access(container)

    def set_container_access(self, container: str, access: ContainerAccess) -> None:
        self.storage_strategy.set_container_access(container, access)

    # directories

    def _directory_key(self, directory: str) -> str:
        separator = self.storage_strategy.get_separator()
        return directory if directory.endswith(separator) else directory + separator

    def directory_exists(self, container: str, directory: str) -> bool:
        self._check_container(container)
        key = self._directory_key(directory)
        if self.storage_strategy.blob_exists(container, key):
            return True
        return any(
            k.startswith(key) for k in self.storage_strategy.get_blob_keys_inside_container(container)
        )

    def create_directory(self, container: str, directory: str) -> None:
        if self.directory_exists(container, directory):
            return
        marker = Blob.build(
            self._directory_key(directory), b"", content_type=DIRECTORY_CONTENT_TYPE
        )
        self.storage_strategy.put_blob(container, marker)

    def delete_directory(self, container: str, directory: str) -> None:
        self.clear_container(container, ListContainerOptions(dir=directory, recursive=True))
        self.remove_directory_marker(container, directory)

    def remove_directory_marker(self, container: str, directory: str) -> None:
        self.storage_strategy.remove_blob(container, self._directory_key(directory))

    # blobs

    def blob_builder(self, name: str) -> Blob:
        return Blob.build(name)

    def put_blob(self, container: str, blob: Blob) -> str:
        """Store ``blob`` and return its ETag (the hex MD5 of its content)."""
        self._logger.debug("Put blob with key [%s] to container [%s]", blob.name, container)
        self._check_container(container)
        return self.storage_strategy.put_blob(container, blob)

    def blob_exists(self, container: str, key: str) -> bool:
        self._check_container(container)
        return self.storage_strategy.blob_exists(container, key)

    def get_blob(
        self, container: str, key: str, options: Optional[GetOptions] = None
    ) -> Optional[Blob]:
        """
        Return the blob, or None when the key does not exist.

        :raises ContainerNotFoundError: when the container does not exist
        :raises BlobPreconditionError: when a conditional option does not hold
        """
        self._logger.debug("Retrieving blob with key %s from container %s", key, container)
        self._check_container(container)
        if not self.storage_strategy.blob_exists(container, key):
            self._logger.debug("Item %s does not exist in container %s", key, container)
            return None

        blob = self.storage_strategy.get_blob(container, key)
        if blob is None:
            return None
        if options is not None:
            self._check_conditions(blob, options)
            if options.ranges:
                blob = self._apply_ranges(blob, options.ranges)
        return blob

    @staticmethod
    def _check_conditions(blob: Blob, options: GetOptions) -> None:
        metadata = blob.metadata
        if options.if_match is not None and metadata.etag != options.if_match.strip('"'):
            raise BlobPreconditionError(f"{metadata.etag} does not match {options.if_match}", 412)
        if options.if_none_match is not None and metadata.etag == options.if_none_match.strip('"'):
            raise BlobPreconditionError(f"{metadata.etag} matches {options.if_none_match}", 304)
        if options.if_modified_since is not None and metadata.last_modified is not None:
            if metadata.last_modified < options.if_modified_since:
                raise BlobPreconditionError(
                    f"{metadata.last_modified} is before {options.if_modified_since}", 304
                )
        if options.if_unmodified_since is not None and metadata.last_modified is not None:
            if metadata.last_modified > options.if_unmodified_since:
                raise BlobPreconditionError(
                    f"{metadata.last_modified} is after {options.if_unmodified_since}", 412
                )

    @staticmethod
    def _apply_ranges(blob: Blob, ranges: list[str]) -> Blob:
        data = blob.payload.read_all() if blob.payload else b""
        if blob.payload is not None:
            blob.payload.release()
        out = bytearray()
        last_index = len(data) - 1
        for spec in ranges:
            if spec.startswith("-"):
                offset, last = max(0, last_index - int(spec[1:]) + 1), last_index
            elif spec.endswith("-"):
                offset, last = int(spec[:-1]), last_index
            elif "-" in spec:
                first, _, end = spec.partition("-")
                offset, last = int(first), int(end)
            else:
                raise ValueError(f"illegal range: {spec}")
            if offset > last or offset >= len(data):
                raise ValueError(f"illegal range: {spec}")
            last = min(last, last_index)
            out += data[offset : last + 1]

        content = blob.metadata.content_metadata.model_copy()
        content.content_length = len(out)
        return Blob(metadata=blob.metadata, payload=Payload(bytes(out), content))

    def blob_metadata(self, container: str, key: str) -> Optional[BlobMetadata]:
        try:
            blob = self.get_blob(container, key)
        except KeyNotFoundError:
            return None
        if blob is None:
            return None
        if blob.payload is not None:
            blob.payload.release()
        return blob.metadata.model_copy(deep=True)

    def remove_blob(self, container: str, key: str) -> None:
        self._check_container(container)
        self.storage_strategy.remove_blob(container, key)

    def remove_blobs(self, container: str, keys: Iterable[str]) -> None:
        for key in keys:
            self.remove_blob(container, key)

    def get_blob_access(self, container: str, key: str) -> BlobAccess:
        return self.storage_strategy.get_blob_access(container, key)

    def set_blob_access(self, container: str, key: str, access: BlobAccess) -> None:
        self.storage_strategy.set_blob_access(container, key, access)

    def copy_blob(
        self,
        from_container: str,
        from_name: str,
        to_container: str,
        to_name: str,
        content_metadata: Optional[ContentMetadata] = None,
        user_metadata: Optional[dict[str, str]] = None,
    ) -> str:
        """Copy a blob, optionally replacing its content headers or user metadata."""
        blob = self.get_blob(from_container, from_name)
        if blob is None:
            raise KeyNotFoundError(from_container, from_name, f"{from_container}/{from_name} not found while copying")

        source = blob.metadata.content_metadata
        content = ContentMetadata(
            content_type=source.content_type,
            content_disposition=source.content_disposition,
            content_encoding=source.content_encoding,
            content_language=source.content_language,
            cache_control=source.cache_control,
        )
        if content_metadata is not None:
            for field in ("content_type", "content_disposition", "content_encoding", "content_language"):
                value = getattr(content_metadata, field)
                if value is not None:
                    setattr(content, field, value)

        data = blob.payload.read_all() if blob.payload else b""
        if blob.payload is not None:
            blob.payload.release()
        copy = Blob(
            metadata=BlobMetadata(
                name=to_name,
                user_metadata=dict(
                    blob.metadata.user_metadata if user_metadata is None else user_metadata
                ),
                content_metadata=content,
            ),
            payload=Payload(data, content.model_copy()),
        )
        return self.put_blob(to_container, copy)

    # listing

    def list(
        self, container: str, options: Optional[ListContainerOptions] = None
    ) -> PageSet[StorageMetadata]:
        """
        List one page of a container.

        * ``dir`` keeps names under ``dir/``, excluding the directory itself;
          ``prefix`` keeps names starting with it.
        * Unless ``recursive``, names with a further separator collapse into
          one ``RELATIVE_PATH`` entry per common prefix.
        * ``marker`` resumes after the named entry; a marker ending in the
          separator skips everything under that prefix.
        * At most ``max_results`` entries (default 1000) are returned; when
          more remain, ``next_marker`` names the last one, with the separator
          appended for a ``RELATIVE_PATH``.
        * User metadata is dropped unless ``detailed``.
        """
        self._check_container(container)
        options = options or ListContainerOptions()
        separator = self.storage_strategy.get_separator()

        keys = self.storage_strategy.get_blob_keys_inside_container(container)
        contents = [
            md for md in (self._entry_for_key(container, key, separator) for key in keys) if md
        ]

        base: Optional[str] = None
        if options.dir:
            base = options.dir if options.dir.endswith(separator) else options.dir + separator
            contents = [md for md in contents if md.name.startswith(base) and md.name != base]
        elif options.prefix:
            base = options.prefix
            contents = [md for md in contents if md.name.startswith(base)]

        if not options.recursive:
            contents = self._collapse_common_prefixes(contents, base, separator)

        contents.sort(key=lambda md: (md.name, md.type.value))

        if options.marker is not None:
            contents = self._after_marker(contents, options.marker, separator)

        max_results = (
            options.max_results
            if options.max_results is not None
            else self.config.default_max_results or DEFAULT_MAX_RESULTS
        )
        next_marker = None
        if contents:
            truncated = len(contents) > max_results
            contents = contents[:max_results]
            if max_results != 0 and truncated:
                last = contents[-1]
                next_marker = last.name
                if last.type == StorageType.RELATIVE_PATH:
                    next_marker += separator

        if not options.detailed:
            for md in contents:
                md.user_metadata.clear()

        return PageSet(contents, next_marker)

    def _entry_for_key(
        self, container: str, key: str, separator: str
    ) -> Optional[StorageMetadata]:
        blob = self.storage_strategy.get_blob(container, key)
        if blob is None:
            if key.endswith(separator):
                return StorageMetadata(type=StorageType.FOLDER, name=key)
            # removed after the keys were read
            self._logger.debug("blob %s left container %s while listing", key, container)
            return None
        if blob.payload is not None:
            blob.payload.release()
        return blob.metadata.model_copy(deep=True)

    @staticmethod
    def _collapse_common_prefixes(
        contents: list[StorageMetadata], base: Optional[str], separator: str
    ) -> list[StorageMetadata]:
        base = base or ""
        kept: list[StorageMetadata] = []
        prefixes: set[str] = set()
        for md in contents:
            remainder = md.name[len(base) :] if md.name.startswith(base) else md.name
            if separator in remainder:
                prefixes.add(base + remainder[: remainder.index(separator)])
            else:
                kept.append(md)
        kept.extend(StorageMetadata(type=StorageType.RELATIVE_PATH, name=p) for p in sorted(prefixes))
        return kept

    @staticmethod
    def _after_marker(
        contents: list[StorageMetadata], marker: str, separator: str
    ) -> list[StorageMetadata]:
        if marker.endswith(separator):
            length = len(marker) - len(separator)
            stem = marker[:length]
            for index, md in enumerate(contents):
                if md.name[:length] > stem:
                    return contents[index:]
            return []
        for index, md in enumerate(contents):
            if md.name > marker:
                return contents[index:]
        return []

    def count_blobs(self, container: str, options: Optional[ListContainerOptions] = None) -> int:
        """Count blobs (not directories) matched by ``options``, recursively by default."""
        options = (options or ListContainerOptions(recursive=True)).model_copy(
            update={"marker": None, "max_results": None}
        )
        count = 0
        while True:
            page = self.list(container, options)
            count += sum(1 for md in page if md.type == StorageType.BLOB)
            if page.next_marker is None:
                return count
            options = options.after_marker(page.next_marker)

    # multipart uploads

    def initiate_multipart_upload(self, container: str, blob_metadata: BlobMetadata) -> MultipartUpload:
        self._check_container(container)
        upload = MultipartUpload(
            id=uuid.uuid4().hex,
            container=container,
            blob_name=blob_metadata.name,
            blob_metadata=blob_metadata.model_copy(deep=True),
        )
        with self._uploads_lock:
            self._uploads[upload.id] = {}
        self._logger.debug("Initiated multipart upload %s for %s/%s", upload.id, container, upload.blob_name)
        return upload

    def _parts(self, upload: MultipartUpload) -> dict[int, tuple[MultipartPart, bytes]]:
        parts = self._uploads.get(upload.id)
        if parts is None:
            raise KeyNotFoundError(upload.container, upload.blob_name, f"no multipart upload {upload.id}")
        return parts

    def upload_multipart_part(
        self, upload: MultipartUpload, part_number: int, payload: Payload
    ) -> MultipartPart:
        data = payload.read_all()
        payload.release()
        part = MultipartPart(
            part_number=part_number,
            size=len(data),
            etag=hashlib.md5(data).hexdigest(),
            last_modified=datetime.now(timezone.utc),
        )
        with self._uploads_lock:
            self._parts(upload)[part_number] = (part, data)
        return part

    def list_multipart_upload(self, upload: MultipartUpload) -> list[MultipartPart]:
        with self._uploads_lock:
            return [part for _, (part, _) in sorted(self._parts(upload).items())]

    def abort_multipart_upload(self, upload: MultipartUpload) -> None:
        with self._uploads_lock:
            self._uploads.pop(upload.id, None)

    def complete_multipart_upload(self, upload: MultipartUpload, parts: list[MultipartPart]) -> str:
        """Assemble ``parts`` in part-number order into the final blob and return its ETag."""
        with self._uploads_lock:
            stored = self._parts(upload)
            chunks = []
            for part in sorted(parts, key=lambda p: p.part_number):
                entry = stored.get(part.part_number)
                if entry is None or entry[0].etag != part.etag:
                    raise IllegalStateError(
                        f"part {part.part_number} of upload {upload.id} is missing or changed"
                    )
                chunks.append(entry[1])
            self._uploads.pop(upload.id, None)

        data = b"".join(chunks)
        metadata = upload.blob_metadata.model_copy(deep=True)
        content = metadata.content_metadata.model_copy()
        content.content_length = len(data)
        content.content_md5 = None
        metadata.content_metadata = content
        return self.put_blob(upload.container, Blob(metadata=metadata, payload=Payload(data, content)))

    def put_blob_multipart(self, container: str, blob: Blob, part_size: int = DEFAULT_PART_SIZE) -> str:
        """Upload ``blob`` in parts of ``part_size`` bytes."""
        if blob.payload is None:
            raise ValueError("blob has no payload")
        upload = self.initiate_multipart_upload(container, blob.metadata)
        try:
            parts = [
                self.upload_multipart_part(upload, number, part)
                for number, part in enumerate(self._slicer.slices(blob.payload, part_size), start=1)
            ]
        except Exception:
            self.abort_multipart_upload(upload)
            raise
        return self.complete_multipart_upload(upload, parts)
