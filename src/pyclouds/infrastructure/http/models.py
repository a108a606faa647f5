"""HTTP request and response value objects."""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urlsplit

from requests.structures import CaseInsensitiveDict

from pyclouds.domain.base.payload import Payload

if TYPE_CHECKING:
    from pyclouds.infrastructure.http.filters import HttpRequestFilter

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "PUT", "DELETE", "OPTIONS"})


def _headers(values: Optional[Mapping[str, Any]]) -> CaseInsensitiveDict:
    return CaseInsensitiveDict({k: str(v) for k, v in (values or {}).items()})


class HttpRequest:
    """
    An outgoing request.

    Requests are treated as immutable: ``replace`` and the ``with_*`` helpers
    return modified copies, which is how filters and redirects rewrite them.
    """

    def __init__(
        self,
        method: str,
        endpoint: str,
        headers: Optional[Mapping[str, Any]] = None,
        payload: Optional[Payload] = None,
        filters: Optional[Sequence["HttpRequestFilter"]] = None,
    ) -> None:
        if not method:
            raise ValueError("method is required")
        if not endpoint:
            raise ValueError("endpoint is required")
        self.method = method.upper()
        self.endpoint = endpoint
        self.headers = _headers(headers)
        self.payload = payload
        self.filters: tuple["HttpRequestFilter", ...] = tuple(filters or ())

    def replace(self, **changes: Any) -> "HttpRequest":
        """Return a copy with the given attributes replaced."""
        values = {
            "method": self.method,
            "endpoint": self.endpoint,
            "headers": self.headers,
            "payload": self.payload,
            "filters": self.filters,
        }
        values.update(changes)
        return HttpRequest(**values)

    def with_header(self, name: str, value: Any) -> "HttpRequest":
        headers = CaseInsensitiveDict(self.headers)
        headers[name] = str(value)
        return self.replace(headers=headers)

    def without_header(self, name: str) -> "HttpRequest":
        headers = CaseInsensitiveDict(self.headers)
        headers.pop(name, None)
        return self.replace(headers=headers)

    def get_first_header_or_none(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    @property
    def host(self) -> str:
        return urlsplit(self.endpoint).netloc

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.endpoint} HTTP/1.1"

    def is_idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HttpRequest):
            return NotImplemented
        return (
            self.method == other.method
            and self.endpoint == other.endpoint
            and dict(self.headers.lower_items()) == dict(other.headers.lower_items())
            and self.payload is other.payload
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"HttpRequest({self.request_line})"


class HttpResponse:
    """A received response. The payload is released by whoever consumes it."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        headers: Optional[Mapping[str, Any]] = None,
        payload: Optional[Payload] = None,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.headers = _headers(headers)
        self.payload = payload

    def get_first_header_or_none(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def buffer_payload(self) -> "HttpResponse":
        """Load the payload into memory so it can be read more than once."""
        if self.payload is not None:
            self.payload.buffer()
        return self

    def content(self) -> bytes:
        """Return the buffered body, or empty bytes when there is none."""
        if self.payload is None:
            return b""
        return self.buffer_payload().payload.read_all()  # type: ignore[union-attr]

    def text(self, limit: Optional[int] = None) -> str:
        body = self.content().decode("utf-8", errors="replace")
        if limit is not None and len(body) > limit:
            return body[:limit] + "..."
        return body

    def release_payload(self) -> None:
        if self.payload is not None:
            self.payload.release()

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status_code} {self.message}".rstrip()

    def __repr__(self) -> str:
        return f"HttpResponse({self.status_line})"
