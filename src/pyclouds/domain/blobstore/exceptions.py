"""Blobstore exceptions."""

from typing import Optional

from pyclouds.domain.base.exceptions import InfrastructureError, ResourceNotFoundError


class ContainerNotFoundError(ResourceNotFoundError):
    """Raised when a container does not exist."""

    def __init__(self, container: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"container {container} not found")
        self.container = container
        self.details["container"] = container


class KeyNotFoundError(ResourceNotFoundError):
    """Raised when a blob does not exist inside an existing container."""

    def __init__(self, container: str, key: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"{container}/{key} not found")
        self.container = container
        self.key = key
        self.details.update({"container": container, "key": key})


class BlobError(InfrastructureError):
    """Raised when a blob operation fails for a reason other than absence."""


class BlobPreconditionError(BlobError):
    """Raised when a conditional read does not hold; ``status_code`` is 304 or 412."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code
