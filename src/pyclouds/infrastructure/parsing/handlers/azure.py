"""Azure blob container listing (``EnumerationResults``)."""

import base64
import binascii
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from pyclouds.domain.base.payload import ContentMetadata
from pyclouds.domain.blobstore.models import BlobMetadata, PageSet, StorageMetadata, StorageType
from pyclouds.infrastructure.parsing.dates import parse_rfc1123
from pyclouds.infrastructure.parsing.sax import HandlerWithResult


class BlobProperties(BaseModel):
    name: str
    url: Optional[str] = None
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    content_length: Optional[int] = None
    content_type: Optional[str] = None
    content_encoding: Optional[str] = None
    content_language: Optional[str] = None
    content_md5: Optional[str] = None  # hex
    cache_control: Optional[str] = None
    blob_type: Optional[str] = None
    lease_status: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class ContainerBlobListing(BaseModel):
    """One page of blobs in an Azure container."""

    container_url: Optional[str] = None
    prefix: Optional[str] = None
    marker: Optional[str] = None
    max_results: Optional[int] = None
    delimiter: Optional[str] = None
    next_marker: Optional[str] = None
    blobs: list[BlobProperties] = Field(default_factory=list)
    blob_prefixes: list[str] = Field(default_factory=list)

    def to_page_set(self, container: Optional[str] = None) -> PageSet[StorageMetadata]:
        items: list[StorageMetadata] = [
            BlobMetadata(
                name=b.name,
                container=container,
                uri=b.url,
                etag=b.etag,
                last_modified=b.last_modified,
                size=b.content_length,
                user_metadata=dict(b.metadata),
                content_metadata=ContentMetadata(
                    content_type=b.content_type,
                    content_length=b.content_length,
                    content_md5=b.content_md5,
                    content_encoding=b.content_encoding,
                    content_language=b.content_language,
                    cache_control=b.cache_control,
                ),
            )
            for b in self.blobs
        ]
        items.extend(
            StorageMetadata(type=StorageType.RELATIVE_PATH, name=p) for p in self.blob_prefixes
        )
        return PageSet(items, self.next_marker)


class ContainerNameEnumerationResultsHandler(HandlerWithResult[ContainerBlobListing]):
    def __init__(self) -> None:
        super().__init__()
        self.listing = ContainerBlobListing()
        self._in_blob = False
        self._in_blob_prefix = False
        self._in_properties = False
        self._in_metadata = False
        self._blob: dict[str, Any] = {}
        self._metadata: dict[str, str] = {}

    def get_result(self) -> ContainerBlobListing:
        return self.listing

    def start(self, name: str, attrs: Any) -> None:
        if name == "EnumerationResults":
            self.listing.container_url = attrs.get("ContainerName")
        elif name == "Blob":
            self._in_blob = True
            self._blob = {}
            self._metadata = {}
        elif name == "BlobPrefix":
            self._in_blob_prefix = True
        elif name == "Properties" and self._in_blob:
            self._in_properties = True
        elif name == "Metadata" and self._in_blob:
            self._in_metadata = True

    def end(self, name: str) -> None:
        value = self.text()
        if self._in_metadata:
            if name == "Metadata":
                self._in_metadata = False
            else:
                self._metadata[name.lower()] = value
            return

        if self._in_properties:
            if name == "Properties":
                self._in_properties = False
            else:
                self._property(name, value)
            return

        if self._in_blob_prefix:
            if name == "Name":
                self.listing.blob_prefixes.append(value)
            elif name == "BlobPrefix":
                self._in_blob_prefix = False
            return

        if self._in_blob:
            if name == "Name":
                self._blob["name"] = value
            elif name == "Url":
                self._blob["url"] = value
            elif name == "Blob":
                self._in_blob = False
                self.listing.blobs.append(BlobProperties(metadata=self._metadata, **self._blob))
            return

        if name == "Prefix":
            self.listing.prefix = value or None
        elif name == "Marker":
            self.listing.marker = value or None
        elif name == "MaxResults":
            self.listing.max_results = int(value)
        elif name == "Delimiter":
            self.listing.delimiter = value or None
        elif name == "NextMarker":
            self.listing.next_marker = value or None

    def _property(self, name: str, value: str) -> None:
        if not value:
            return
        if name == "Last-Modified":
            self._blob["last_modified"] = parse_rfc1123(value)
        elif name == "Etag":
            self._blob["etag"] = value.strip('"')
        elif name == "Content-Length":
            self._blob["content_length"] = int(value)
        elif name == "Content-Type":
            self._blob["content_type"] = value
        elif name == "Content-Encoding":
            self._blob["content_encoding"] = value
        elif name == "Content-Language":
            self._blob["content_language"] = value
        elif name == "Content-MD5":
            self._blob["content_md5"] = _base64_to_hex(value)
        elif name == "Cache-Control":
            self._blob["cache_control"] = value
        elif name == "BlobType":
            self._blob["blob_type"] = value
        elif name == "LeaseStatus":
            self._blob["lease_status"] = value


def _base64_to_hex(value: str) -> Optional[str]:
    try:
        return base64.b64decode(value, validate=True).hex()
    except (binascii.Error, ValueError):
        return None
