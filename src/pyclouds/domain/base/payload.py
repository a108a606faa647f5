"""Payloads carried by HTTP messages and blobs."""

import hashlib
import io
from pathlib import Path
from typing import BinaryIO, Optional, Union

from pydantic import BaseModel, ConfigDict


class ContentMetadata(BaseModel):
    """HTTP content headers describing a payload."""

    model_config = ConfigDict(validate_assignment=True)

    content_type: Optional[str] = None
    content_length: Optional[int] = None
    content_md5: Optional[str] = None  # lowercase hex
    content_encoding: Optional[str] = None
    content_disposition: Optional[str] = None
    content_language: Optional[str] = None
    cache_control: Optional[str] = None

    def to_headers(self) -> dict[str, str]:
        """Render the populated fields as HTTP headers."""
        headers: dict[str, str] = {}
        if self.content_type:
            headers["Content-Type"] = self.content_type
        if self.content_length is not None:
            headers["Content-Length"] = str(self.content_length)
        if self.content_md5:
            headers["Content-MD5"] = self.content_md5
        if self.content_encoding:
            headers["Content-Encoding"] = self.content_encoding
        if self.content_disposition:
            headers["Content-Disposition"] = self.content_disposition
        if self.content_language:
            headers["Content-Language"] = self.content_language
        if self.cache_control:
            headers["Cache-Control"] = self.cache_control
        return headers


Source = Union[bytes, str, Path, BinaryIO]


class Payload:
    """
    Wraps request or response content.

    Byte and file payloads are repeatable: every call to ``open_stream`` starts
    from the beginning. Stream payloads can be read once, unless ``buffer`` is
    called to pull the remaining bytes into memory.
    """

    def __init__(self, source: Source, metadata: Optional[ContentMetadata] = None) -> None:
        if isinstance(source, str):
            source = source.encode("utf-8")
        self._source = source
        self._released = False
        self.metadata = metadata or ContentMetadata()
        if self.metadata.content_length is None:
            self.metadata.content_length = self._known_length()

    @classmethod
    def from_bytes(cls, data: Union[bytes, str], content_type: Optional[str] = None) -> "Payload":
        """Create a repeatable in-memory payload."""
        return cls(data, ContentMetadata(content_type=content_type))

    @classmethod
    def from_file(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "Payload":
        """Create a repeatable payload backed by a file on disk."""
        return cls(Path(path), ContentMetadata(content_type=content_type))

    @classmethod
    def from_stream(cls, stream: BinaryIO, content_length: Optional[int] = None) -> "Payload":
        """Create a single-use payload over an open binary stream."""
        return cls(stream, ContentMetadata(content_length=content_length))

    def _known_length(self) -> Optional[int]:
        if isinstance(self._source, bytes):
            return len(self._source)
        if isinstance(self._source, Path):
            return self._source.stat().st_size
        return None

    def is_repeatable(self) -> bool:
        return isinstance(self._source, (bytes, Path))

    @property
    def released(self) -> bool:
        return self._released

    def open_stream(self) -> BinaryIO:
        """Open the payload content for reading."""
        if isinstance(self._source, bytes):
            return io.BytesIO(self._source)
        if isinstance(self._source, Path):
            return self._source.open("rb")
        return self._source

    def read_all(self) -> bytes:
        """Read the whole payload. Single-use payloads are consumed."""
        if isinstance(self._source, bytes):
            return self._source
        if isinstance(self._source, Path):
            return self._source.read_bytes()
        if self._released:
            return b""
        return self._source.read()

    def buffer(self) -> "Payload":
        """Pull a single-use stream into memory so it becomes repeatable."""
        if not self.is_repeatable():
            stream = self._source
            data = b"" if self._released else stream.read()
            _close_quietly(stream)
            self._source = data
            self._released = False
            self.metadata.content_length = len(data)
        return self

    def release(self) -> None:
        """Close underlying resources. Safe to call more than once."""
        if not self.is_repeatable() and not self._released:
            _close_quietly(self._source)
        self._released = True

    def md5_hex(self) -> str:
        """Compute the MD5 of the content without consuming repeatable payloads."""
        digest = hashlib.md5()
        if isinstance(self._source, bytes):
            digest.update(self._source)
        else:
            stream = self.open_stream()
            for chunk in iter(lambda: stream.read(65536), b""):
                digest.update(chunk)
            if isinstance(self._source, Path):
                stream.close()
        return digest.hexdigest()

    def __repr__(self) -> str:
        kind = type(self._source).__name__
        return f"Payload({kind}, length={self.metadata.content_length})"


def _close_quietly(stream) -> None:
    try:
        stream.close()
    except OSError:
        pass
