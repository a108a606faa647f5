"""JSON response parsing into pydantic models."""

import json
from collections.abc import Sequence
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pyclouds.infrastructure.http.errors import ResponseParseError
from pyclouds.infrastructure.http.models import HttpRequest, HttpResponse

T = TypeVar("T")


class ParseJson(Generic[T]):
    """
    Parse a JSON body into ``target``.

    ``target`` may be anything pydantic's ``TypeAdapter`` accepts: a model,
    ``list[Model]``, ``dict[str, int]`` and so on. Field names follow the
    model's aliases.
    """

    def __init__(self, target: Any) -> None:
        self.target = target
        self._adapter: TypeAdapter[T] = TypeAdapter(target)

    def __call__(self, response: HttpResponse, request: Optional[HttpRequest] = None) -> T:
        return self.parse(response, request)

    def parse(self, response: HttpResponse, request: Optional[HttpRequest] = None) -> T:
        try:
            return self.parse_bytes(response.content(), request)
        except ResponseParseError as e:
            raise ResponseParseError(e.message, request, response) from e.__cause__
        finally:
            response.release_payload()

    def parse_bytes(self, data: Union[bytes, str], request: Optional[HttpRequest] = None) -> T:
        return self.apply(_loads(data, request), request)

    def apply(self, value: Any, request: Optional[HttpRequest] = None) -> T:
        try:
            return self._adapter.validate_python(value)
        except PydanticValidationError as e:
            raise ResponseParseError(
                f"could not convert JSON to {self.target!r}: {e}", request
            ) from e


class ParseFirstJsonValueNamed(ParseJson[T]):
    """
    Parse the value stored under the first present key of a JSON object.

    Responses such as ``{"server": {...}}`` or ``{"servers": [...]}`` are
    unwrapped this way. Missing keys and a ``null`` body give None.
    """

    def __init__(self, keys: Union[str, Sequence[str]], target: Any) -> None:
        super().__init__(target)
        self.keys = (keys,) if isinstance(keys, str) else tuple(keys)
        if not self.keys:
            raise ValueError("at least one key is required")

    def parse_bytes(
        self, data: Union[bytes, str], request: Optional[HttpRequest] = None
    ) -> Optional[T]:  # type: ignore[override]
        document = _loads(data, request)
        if document is None:
            return None
        if not isinstance(document, dict):
            raise ResponseParseError(
                f"expected a JSON object with one of {list(self.keys)}", request
            )
        for key in self.keys:
            if key in document:
                value = document[key]
                return None if value is None else self.apply(value, request)
        return None


def _loads(data: Union[bytes, str], request: Optional[HttpRequest]) -> Any:
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if not data.strip():
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"invalid JSON: {e}", request) from e
