"""Streaming XML response parsing with SAX content handlers."""

import xml.sax
from collections.abc import Callable
from typing import Any, Generic, Optional, TypeVar, Union

from pyclouds.infrastructure.http.errors import ResponseParseError
from pyclouds.infrastructure.http.models import HttpRequest, HttpResponse
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class HandlerWithResult(xml.sax.ContentHandler, Generic[T]):
    """
    Content handler that builds a single result.

    ``current_text`` collects character data for the element being read and is
    cleared whenever an element starts. Subclasses implement ``start`` and
    ``end`` with local tag names; namespace prefixes are stripped.
    """

    def __init__(self) -> None:
        super().__init__()
        self.current_text: list[str] = []
        self.request: Optional[HttpRequest] = None

    def set_context(self, request: Optional[HttpRequest]) -> "HandlerWithResult[T]":
        self.request = request
        return self

    def get_result(self) -> T:
        raise NotImplementedError

    def startElement(self, name: str, attrs: Any) -> None:
        self.current_text = []
        self.start(_local_name(name), attrs)

    def endElement(self, name: str) -> None:
        self.end(_local_name(name))
        self.current_text = []

    def characters(self, content: str) -> None:
        self.current_text.append(content)

    def start(self, name: str, attrs: Any) -> None:
        pass

    def end(self, name: str) -> None:
        pass

    def text(self) -> str:
        """Collected character data for the current element, stripped."""
        return "".join(self.current_text).strip()


def _local_name(name: str) -> str:
    return name.rsplit(":", 1)[-1]


class ParseSax(Generic[T]):
    """
    Run a fresh handler over a response body and return its result.

    Instances are callable so they can be passed wherever a response
    transformer is expected.
    """

    def __init__(self, handler_factory: Callable[[], HandlerWithResult[T]]) -> None:
        self.handler_factory = handler_factory

    def __call__(self, response: HttpResponse, request: Optional[HttpRequest] = None) -> T:
        return self.parse(response, request)

    def parse(self, response: HttpResponse, request: Optional[HttpRequest] = None) -> T:
        if response.payload is None:
            raise ResponseParseError("response has no content to parse", request, response)
        try:
            return self.parse_bytes(response.content(), request)
        except ResponseParseError as e:
            raise ResponseParseError(e.message, request, response) from e.__cause__
        finally:
            response.release_payload()

    def parse_bytes(self, data: Union[bytes, str], request: Optional[HttpRequest] = None) -> T:
        if isinstance(data, str):
            data = data.encode("utf-8")
        handler = self.handler_factory().set_context(request)
        try:
            xml.sax.parseString(data, handler)
        except xml.sax.SAXException as e:
            logger.debug("Error parsing input: %s", e)
            raise ResponseParseError(f"Error parsing input: {e}", request) from e
        return handler.get_result()
