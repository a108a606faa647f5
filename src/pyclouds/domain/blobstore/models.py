"""Blobstore value objects."""

from datetime import datetime
from enum import Enum
from typing import Generic, Iterator, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyclouds.domain.base.payload import ContentMetadata, Payload


class StorageType(str, Enum):
    CONTAINER = "container"
    BLOB = "blob"
    FOLDER = "folder"
    RELATIVE_PATH = "relative_path"


class ContainerAccess(str, Enum):
    PRIVATE = "private"
    PUBLIC_READ = "public_read"


class BlobAccess(str, Enum):
    PRIVATE = "private"
    PUBLIC_READ = "public_read"


class StorageMetadata(BaseModel):
    """Metadata for anything a listing can return: containers, blobs and directories."""

    model_config = ConfigDict(validate_assignment=True)

    type: StorageType
    name: str
    provider_id: Optional[str] = None
    location: Optional[str] = None
    uri: Optional[str] = None
    etag: Optional[str] = None
    creation_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    size: Optional[int] = None
    user_metadata: dict[str, str] = Field(default_factory=dict)

    def sort_key(self) -> str:
        return self.name


class BlobMetadata(StorageMetadata):
    """Metadata for a single blob, including its content headers."""

    type: StorageType = StorageType.BLOB
    container: Optional[str] = None
    content_metadata: ContentMetadata = Field(default_factory=ContentMetadata)


class Blob(BaseModel):
    """A named payload with metadata."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    metadata: BlobMetadata
    payload: Optional[Payload] = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @classmethod
    def build(
        cls,
        name: str,
        payload: "Payload | bytes | str | None" = None,
        content_type: Optional[str] = None,
        user_metadata: Optional[dict[str, str]] = None,
    ) -> "Blob":
        """Convenience builder mirroring ``BlobStore.blob_builder``."""
        if payload is not None and not isinstance(payload, Payload):
            payload = Payload.from_bytes(payload, content_type=content_type)
        content_metadata = payload.metadata.model_copy() if payload else ContentMetadata()
        if content_type:
            content_metadata.content_type = content_type
        return cls(
            metadata=BlobMetadata(
                name=name,
                user_metadata=dict(user_metadata or {}),
                content_metadata=content_metadata,
                size=content_metadata.content_length,
            ),
            payload=payload,
        )


T = TypeVar("T")


class PageSet(Generic[T]):
    """One page of a listing plus the marker to resume from, if truncated."""

    def __init__(self, items: list[T], next_marker: Optional[str] = None) -> None:
        self.items = list(items)
        self.next_marker = next_marker

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)

    def __repr__(self) -> str:
        return f"PageSet(items={len(self.items)}, next_marker={self.next_marker!r})"


class ListContainerOptions(BaseModel):
    """Options controlling a container listing."""

    dir: Optional[str] = None
    prefix: Optional[str] = None
    marker: Optional[str] = None
    max_results: Optional[int] = None
    recursive: bool = False
    detailed: bool = False

    @field_validator("max_results")
    @classmethod
    def validate_max_results(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("max_results must be >= 0")
        return v

    def in_directory(self, directory: str) -> "ListContainerOptions":
        return self.model_copy(update={"dir": directory})

    def after_marker(self, marker: str) -> "ListContainerOptions":
        return self.model_copy(update={"marker": marker})

    def with_recursive(self) -> "ListContainerOptions":
        return self.model_copy(update={"recursive": True})


def recursive() -> ListContainerOptions:
    return ListContainerOptions(recursive=True)


class GetOptions(BaseModel):
    """Conditional and ranged reads."""

    if_match: Optional[str] = None
    if_none_match: Optional[str] = None
    if_modified_since: Optional[datetime] = None
    if_unmodified_since: Optional[datetime] = None
    ranges: list[str] = Field(default_factory=list)

    def range(self, start: int, end: Optional[int] = None) -> "GetOptions":
        """Add an inclusive byte range; an open end reads to the end of the blob."""
        spec = f"{start}-" if end is None else f"{start}-{end}"
        return self.model_copy(update={"ranges": [*self.ranges, spec]})

    def tail(self, count: int) -> "GetOptions":
        return self.model_copy(update={"ranges": [*self.ranges, f"-{count}"]})


class MultipartUpload(BaseModel):
    id: str
    container: str
    blob_name: str
    blob_metadata: BlobMetadata


class MultipartPart(BaseModel):
    part_number: int
    size: int
    etag: str
    last_modified: Optional[datetime] = None

    @field_validator("part_number")
    @classmethod
    def validate_part_number(cls, v: int) -> int:
        if v < 1:
            raise ValueError("part_number must be positive")
        return v
