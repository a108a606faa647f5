"""S3 bucket listing responses."""

from typing import Any, Optional

from pyclouds.domain.base.payload import ContentMetadata
from pyclouds.domain.blobstore.models import BlobMetadata, PageSet, StorageMetadata, StorageType
from pyclouds.infrastructure.parsing.dates import parse_iso8601
from pyclouds.infrastructure.parsing.sax import HandlerWithResult


def _strip_etag(value: str) -> str:
    return value.strip('"')


class ListBucketHandler(HandlerWithResult[PageSet[StorageMetadata]]):
    """
    Parse ``ListBucketResult``.

    Keys become ``BlobMetadata`` and ``CommonPrefixes`` become
    ``RELATIVE_PATH`` entries. When the listing is truncated the next marker
    is ``NextMarker`` if present, otherwise the last key returned.
    """

    def __init__(self) -> None:
        super().__init__()
        self.bucket_name: Optional[str] = None
        self.prefix: Optional[str] = None
        self.delimiter: Optional[str] = None
        self.max_keys: Optional[int] = None
        self.truncated = False
        self._next_marker: Optional[str] = None
        self._items: list[StorageMetadata] = []
        self._prefixes: list[str] = []
        self._in_contents = False
        self._in_common_prefixes = False
        self._in_owner = False
        self._current: dict[str, Any] = {}

    def get_result(self) -> PageSet[StorageMetadata]:
        items = list(self._items)
        items.extend(
            StorageMetadata(type=StorageType.RELATIVE_PATH, name=p) for p in self._prefixes
        )
        next_marker = None
        if self.truncated:
            next_marker = self._next_marker
            if next_marker is None and self._items:
                next_marker = self._items[-1].name
        return PageSet(items, next_marker)

    def start(self, name: str, attrs: Any) -> None:
        if name == "Contents":
            self._in_contents = True
            self._current = {}
        elif name == "CommonPrefixes":
            self._in_common_prefixes = True
        elif name == "Owner":
            self._in_owner = True

    def end(self, name: str) -> None:
        value = self.text()
        if self._in_owner:
            if name == "Owner":
                self._in_owner = False
            return

        if self._in_contents:
            if name == "Contents":
                self._finish_contents()
            elif name == "Key":
                self._current["name"] = value
            elif name == "LastModified":
                self._current["last_modified"] = parse_iso8601(value)
            elif name == "ETag":
                self._current["etag"] = _strip_etag(value)
            elif name == "Size":
                self._current["size"] = int(value)
            return

        if self._in_common_prefixes:
            if name == "Prefix":
                self._prefixes.append(value)
            elif name == "CommonPrefixes":
                self._in_common_prefixes = False
            return

        if name == "Name":
            self.bucket_name = value
        elif name == "Prefix":
            self.prefix = value or None
        elif name == "Delimiter":
            self.delimiter = value or None
        elif name == "MaxKeys":
            self.max_keys = int(value)
        elif name == "NextMarker":
            self._next_marker = value or None
        elif name == "IsTruncated":
            self.truncated = value.lower() == "true"

    def _finish_contents(self) -> None:
        self._in_contents = False
        etag = self._current.get("etag")
        md5 = etag if etag and "-" not in etag else None
        self._items.append(
            BlobMetadata(
                name=self._current["name"],
                container=self.bucket_name,
                last_modified=self._current.get("last_modified"),
                etag=etag,
                size=self._current.get("size"),
                content_metadata=ContentMetadata(
                    content_length=self._current.get("size"), content_md5=md5
                ),
            )
        )


class ListAllMyBucketsHandler(HandlerWithResult[list[StorageMetadata]]):
    """Parse ``ListAllMyBucketsResult`` into container metadata."""

    def __init__(self) -> None:
        super().__init__()
        self._buckets: list[StorageMetadata] = []
        self._name: Optional[str] = None
        self._creation_date = None
        self._in_bucket = False

    def get_result(self) -> list[StorageMetadata]:
        return self._buckets

    def start(self, name: str, attrs: Any) -> None:
        if name == "Bucket":
            self._in_bucket = True
            self._name = None
            self._creation_date = None

    def end(self, name: str) -> None:
        if not self._in_bucket:
            return
        if name == "Name":
            self._name = self.text()
        elif name == "CreationDate":
            self._creation_date = parse_iso8601(self.text())
        elif name == "Bucket":
            self._in_bucket = False
            self._buckets.append(
                StorageMetadata(
                    type=StorageType.CONTAINER,
                    name=self._name or "",
                    creation_date=self._creation_date,
                )
            )
