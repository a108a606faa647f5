"""Small facade for calling an HTTP API through the command executor."""

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Optional
from urllib.parse import urlencode

from pyclouds.domain.base.exceptions import DomainException
from pyclouds.domain.base.payload import Payload
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.executor import BaseHttpCommandExecutorService
from pyclouds.infrastructure.http.fallbacks import Fallback, Fallbacks
from pyclouds.infrastructure.http.filters import HttpRequestFilter
from pyclouds.infrastructure.http.models import HttpRequest, HttpResponse

ResponseTransformer = Callable[..., Any]


class HttpApi:
    """
    Build requests against ``endpoint`` and run them through ``executor``.

    Every request carries ``filters``. A ``parser`` turns the response into a
    result; a ``fallback`` turns selected failures into values.
    """

    def __init__(
        self,
        endpoint: str,
        executor: BaseHttpCommandExecutorService,
        filters: Optional[Sequence[HttpRequestFilter]] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.executor = executor
        self.filters = tuple(filters or ())

    def build_request(
        self,
        method: str,
        path: str = "",
        headers: Optional[Mapping[str, Any]] = None,
        payload: Optional[Payload] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> HttpRequest:
        url = self.endpoint
        if path:
            url = f"{url}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{urlencode(query)}"
        return HttpRequest(method, url, headers=headers, payload=payload, filters=self.filters)

    def call(
        self,
        method: str,
        path: str = "",
        headers: Optional[Mapping[str, Any]] = None,
        payload: Optional[Payload] = None,
        query: Optional[Mapping[str, Any]] = None,
        parser: Optional[ResponseTransformer] = None,
        fallback: Optional[Fallback] = None,
    ) -> Any:
        request = self.build_request(method, path, headers, payload, query)
        try:
            response = self.executor.invoke(HttpCommand(request))
        except DomainException as e:
            if fallback is None:
                raise
            return fallback.create(e)
        if parser is None:
            return response
        return parser(response, request)

    def get(self, path: str = "", **kwargs: Any) -> Any:
        return self.call("GET", path, **kwargs)

    def put(self, path: str = "", **kwargs: Any) -> Any:
        return self.call("PUT", path, **kwargs)

    def post(self, path: str = "", **kwargs: Any) -> Any:
        return self.call("POST", path, **kwargs)

    def delete(self, path: str = "", **kwargs: Any) -> Any:
        """DELETE; a missing resource counts as deleted unless a fallback is given."""
        kwargs.setdefault("fallback", Fallbacks.true_on_not_found)
        kwargs.setdefault("parser", _true)
        return self.call("DELETE", path, **kwargs)

    def exists(self, path: str = "", **kwargs: Any) -> bool:
        kwargs.setdefault("fallback", Fallbacks.false_on_not_found)
        return self.call("HEAD", path, parser=_true, **kwargs)


def _true(response: HttpResponse, request: Optional[HttpRequest] = None) -> bool:
    response.release_payload()
    return True
