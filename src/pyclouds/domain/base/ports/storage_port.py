"""Domain port for blob storage backends."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Optional

from pyclouds.domain.blobstore.models import (
    Blob,
    BlobAccess,
    ContainerAccess,
    ListContainerOptions,
    StorageMetadata,
)


class LocalStorageStrategy(ABC):
    """
    Key/value storage primitives that ``LocalBlobStore`` builds listing,
    directory and clearing semantics on top of.
    """

    @abstractmethod
    def container_exists(self, container: str) -> bool:
        """Check whether a container exists."""

    @abstractmethod
    def get_all_container_names(self) -> Iterable[str]:
        """Return names of every container."""

    @abstractmethod
    def create_container(self, container: str, location: Optional[str] = None, public_read: bool = False) -> bool:
        """Create a container. Returns False if it already existed."""

    @abstractmethod
    def delete_container(self, container: str) -> None:
        """Delete a container and everything in it."""

    @abstractmethod
    def clear_container(self, container: str, options: Optional[ListContainerOptions] = None) -> None:
        """Remove blobs from a container, keeping the container."""

    @abstractmethod
    def get_container_metadata(self, container: str) -> Optional[StorageMetadata]:
        """Return container metadata or None."""

    @abstractmethod
    def get_container_access(self, container: str) -> ContainerAccess:
        """Return the container ACL."""

    @abstractmethod
    def set_container_access(self, container: str, access: ContainerAccess) -> None:
        """Set the container ACL."""

    @abstractmethod
    def blob_exists(self, container: str, key: str) -> bool:
        """Check whether a blob exists."""

    @abstractmethod
    def get_blob_keys_inside_container(self, container: str) -> Iterable[str]:
        """Return every blob key in a container."""

    @abstractmethod
    def get_blob(self, container: str, key: str) -> Optional[Blob]:
        """Return a blob or None."""

    @abstractmethod
    def put_blob(self, container: str, blob: Blob) -> str:
        """Store a blob and return its ETag."""

    @abstractmethod
    def remove_blob(self, container: str, key: str) -> None:
        """Remove a blob. Missing blobs are ignored."""

    @abstractmethod
    def get_blob_access(self, container: str, key: str) -> BlobAccess:
        """Return the blob ACL."""

    @abstractmethod
    def set_blob_access(self, container: str, key: str, access: BlobAccess) -> None:
        """Set the blob ACL."""

    def get_separator(self) -> str:
        return "/"
