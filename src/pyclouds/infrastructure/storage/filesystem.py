"""Storage strategy keeping containers as directories on local disk."""

import json
import os
import shutil
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from pyclouds.domain.base.exceptions import ValidationError
from pyclouds.domain.base.payload import Payload
from pyclouds.domain.base.ports.storage_port import LocalStorageStrategy
from pyclouds.domain.blobstore.exceptions import ContainerNotFoundError, KeyNotFoundError
from pyclouds.domain.blobstore.models import (
    Blob,
    BlobAccess,
    BlobMetadata,
    ContainerAccess,
    ListContainerOptions,
    StorageMetadata,
    StorageType,
)
from pyclouds.infrastructure.logging.logger import get_logger
from pyclouds.infrastructure.storage.transient import matches_options, store_payload

logger = get_logger(__name__)

METADATA_DIR = ".metadata"
CONTAINER_SIDECAR = "container.json"
BLOB_SIDECARS = "blobs"
SIDECAR_SUFFIX = ".json"


class FilesystemStorageStrategy(LocalStorageStrategy):
    """
    One directory per container and one file per blob under ``base_dir``.

    Blob metadata and ACLs live in JSON sidecar files under
    ``base_dir/.metadata/<container>/``, so container names may not start
    with a dot. A key ending in ``/`` is a directory marker.
    """

    def __init__(self, base_dir: Union[str, Path], default_location: Optional[str] = None) -> None:
        self.base_dir = Path(base_dir)
        self.default_location = default_location
        self._lock = threading.RLock()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    # paths

    def _container_path(self, container: str) -> Path:
        if not container or "/" in container or "\\" in container or container.startswith("."):
            raise ValidationError(f"invalid container name: {container!r}")
        return self.base_dir / container

    def _blob_path(self, container: str, key: str) -> Path:
        parts = key.split("/")
        if not key or key.startswith("/") or any(p in (".", "..") for p in parts):
            raise ValidationError(f"invalid blob key: {key!r}")
        return self._container_path(container).joinpath(*[p for p in parts if p])

    def _metadata_root(self, container: str) -> Path:
        return self.base_dir / METADATA_DIR / container

    def _blob_sidecar(self, container: str, key: str) -> Path:
        encoded = key[:-1] + "%2F" if key.endswith("/") else key
        return self._metadata_root(container) / BLOB_SIDECARS / (encoded + SIDECAR_SUFFIX)

    @staticmethod
    def _read_json(path: Path) -> Optional[dict[str, Any]]:
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: Path, document: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(document, f)
        os.replace(tmp, path)

    # containers

    def container_exists(self, container: str) -> bool:
        return self._container_path(container).is_dir()

    def get_all_container_names(self) -> Iterable[str]:
        return sorted(
            p.name for p in self.base_dir.iterdir() if p.is_dir() and not p.name.startswith(".")
        )

    def create_container(
        self, container: str, location: Optional[str] = None, public_read: bool = False
    ) -> bool:
        path = self._container_path(container)
        with self._lock:
            if path.is_dir():
                return False
            path.mkdir(parents=True)
            metadata = StorageMetadata(
                type=StorageType.CONTAINER,
                name=container,
                location=location or self.default_location,
                uri=path.as_uri(),
                creation_date=datetime.now(timezone.utc),
            )
            access = ContainerAccess.PUBLIC_READ if public_read else ContainerAccess.PRIVATE
            self._write_json(
                self._metadata_root(container) / CONTAINER_SIDECAR,
                {"metadata": metadata.model_dump(mode="json"), "access": access.value},
            )
        logger.debug("Created container %s at %s", container, path)
        return True

    def delete_container(self, container: str) -> None:
        with self._lock:
            shutil.rmtree(self._container_path(container), ignore_errors=True)
            shutil.rmtree(self._metadata_root(container), ignore_errors=True)

    def clear_container(
        self, container: str, options: Optional[ListContainerOptions] = None
    ) -> None:
        options = options or ListContainerOptions(recursive=True)
        with self._lock:
            for key in list(self.get_blob_keys_inside_container(container)):
                if matches_options(key, options, self.get_separator()):
                    self.remove_blob(container, key)

    def _container_document(self, container: str) -> dict[str, Any]:
        document = self._read_json(self._metadata_root(container) / CONTAINER_SIDECAR)
        if document is None:
            if not self.container_exists(container):
                raise ContainerNotFoundError(container)
            # directory created outside this strategy
            document = {
                "metadata": StorageMetadata(
                    type=StorageType.CONTAINER, name=container
                ).model_dump(mode="json"),
                "access": ContainerAccess.PRIVATE.value,
            }
        return document

    def get_container_metadata(self, container: str) -> Optional[StorageMetadata]:
        if not self.container_exists(container):
            return None
        return StorageMetadata.model_validate(self._container_document(container)["metadata"])

    def get_container_access(self, container: str) -> ContainerAccess:
        return ContainerAccess(self._container_document(container)["access"])

    def set_container_access(self, container: str, access: ContainerAccess) -> None:
        with self._lock:
            document = self._container_document(container)
            document["access"] = access.value
            self._write_json(self._metadata_root(container) / CONTAINER_SIDECAR, document)

    # blobs

    def blob_exists(self, container: str, key: str) -> bool:
        path = self._blob_path(container, key)
        if key.endswith("/"):
            return path.is_dir() and self._blob_sidecar(container, key).exists()
        return path.is_file()

    def get_blob_keys_inside_container(self, container: str) -> Iterable[str]:
        root = self._container_path(container)
        if not root.is_dir():
            raise ContainerNotFoundError(container)
        keys: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            relative = Path(dirpath).relative_to(root)
            prefix = "" if relative == Path(".") else relative.as_posix() + "/"
            for filename in filenames:
                keys.append(prefix + filename)
            if not prefix:
                continue
            empty = not dirnames and not filenames
            if empty or self._blob_sidecar(container, prefix).exists():
                keys.append(prefix)
        return sorted(keys)

    def get_blob(self, container: str, key: str) -> Optional[Blob]:
        if not self.blob_exists(container, key):
            return None
        document = self._read_json(self._blob_sidecar(container, key))
        path = self._blob_path(container, key)
        if document is not None:
            metadata = BlobMetadata.model_validate(document["metadata"])
        else:
            metadata = self._metadata_from_file(container, key, path)
        if key.endswith("/"):
            payload = Payload(b"", metadata.content_metadata.model_copy())
        else:
            payload = Payload(path, metadata.content_metadata.model_copy())
        return Blob(metadata=metadata, payload=payload)

    @staticmethod
    def _metadata_from_file(container: str, key: str, path: Path) -> BlobMetadata:
        payload = Payload.from_file(path)
        md5 = payload.md5_hex()
        stat = path.stat()
        metadata = BlobMetadata(
            name=key,
            container=container,
            uri=path.as_uri(),
            etag=md5,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
        metadata.content_metadata.content_length = stat.st_size
        metadata.content_metadata.content_md5 = md5
        return metadata

    def put_blob(self, container: str, blob: Blob) -> str:
        if not self.container_exists(container):
            raise ContainerNotFoundError(container)
        key = blob.name
        path = self._blob_path(container, key)
        data, etag = store_payload(blob)

        metadata = blob.metadata.model_copy(deep=True)
        if blob.payload is not None:
            content = blob.payload.metadata.model_copy()
            for field in ("content_type", "content_disposition", "content_encoding",
                          "content_language", "cache_control"):
                if getattr(content, field) is None:
                    setattr(content, field, getattr(metadata.content_metadata, field))
            metadata.content_metadata = content
        metadata.content_metadata.content_length = len(data)
        metadata.content_metadata.content_md5 = etag
        metadata.container = container
        metadata.uri = path.as_uri()
        metadata.last_modified = datetime.now(timezone.utc)
        metadata.size = len(data)
        metadata.etag = etag

        with self._lock:
            if key.endswith("/"):
                metadata.type = StorageType.FOLDER
                path.mkdir(parents=True, exist_ok=True)
            else:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp = path.with_name(path.name + ".tmp-upload")
                tmp.write_bytes(data)
                os.replace(tmp, path)
            self._write_json(
                self._blob_sidecar(container, key),
                {"metadata": metadata.model_dump(mode="json"), "access": BlobAccess.PRIVATE.value},
            )
        return etag

    def remove_blob(self, container: str, key: str) -> None:
        path = self._blob_path(container, key)
        with self._lock:
            if key.endswith("/"):
                self._blob_sidecar(container, key).unlink(missing_ok=True)
                if path.is_dir() and not any(path.iterdir()):
                    path.rmdir()
            else:
                path.unlink(missing_ok=True)
                self._blob_sidecar(container, key).unlink(missing_ok=True)
            self._prune_empty_parents(container, path.parent)

    def _prune_empty_parents(self, container: str, directory: Path) -> None:
        root = self._container_path(container)
        while directory != root and root in directory.parents:
            key = directory.relative_to(root).as_posix() + "/"
            if any(directory.iterdir()) or self._blob_sidecar(container, key).exists():
                return
            directory.rmdir()
            directory = directory.parent

    def _blob_document(self, container: str, key: str) -> dict[str, Any]:
        if not self.container_exists(container):
            raise ContainerNotFoundError(container)
        if not self.blob_exists(container, key):
            raise KeyNotFoundError(container, key)
        document = self._read_json(self._blob_sidecar(container, key))
        if document is None:
            metadata = self._metadata_from_file(container, key, self._blob_path(container, key))
            document = {"metadata": metadata.model_dump(mode="json"), "access": BlobAccess.PRIVATE.value}
        return document

    def get_blob_access(self, container: str, key: str) -> BlobAccess:
        return BlobAccess(self._blob_document(container, key)["access"])

    def set_blob_access(self, container: str, key: str, access: BlobAccess) -> None:
        with self._lock:
            document = self._blob_document(container, key)
            document["access"] = access.value
            self._write_json(self._blob_sidecar(container, key), document)
