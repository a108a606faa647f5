"""Request filters applied by the executor before each send."""

import base64
from abc import ABC, abstractmethod
from collections.abc import Hashable
from typing import Any

from pyclouds.infrastructure.cache.memoize import ExpiringCache
from pyclouds.infrastructure.http.handlers.renew import AUTH_TOKEN
from pyclouds.infrastructure.http.models import HttpRequest


class HttpRequestFilter(ABC):
    @abstractmethod
    def filter(self, request: HttpRequest) -> HttpRequest:
        """Return the request to send, usually a modified copy."""


class BasicAuthentication(HttpRequestFilter):
    """Add an ``Authorization: Basic`` header."""

    def __init__(self, identity: str, credential: str) -> None:
        if identity is None or credential is None:
            raise ValueError("identity and credential are required")
        token = base64.b64encode(f"{identity}:{credential}".encode("utf-8")).decode("ascii")
        self._header = f"Basic {token}"

    def filter(self, request: HttpRequest) -> HttpRequest:
        return request.with_header("Authorization", self._header)

    def __repr__(self) -> str:
        return "BasicAuthentication(****)"


class TokenAuthentication(HttpRequestFilter):
    """
    Add ``X-Auth-Token`` from an authentication cache.

    The token is looked up on every send, so once ``RetryOnRenew`` has
    invalidated the cache the retried request carries a fresh token.
    """

    def __init__(self, auth_cache: ExpiringCache[Hashable, Any], cache_key: Hashable) -> None:
        self.auth_cache = auth_cache
        self.cache_key = cache_key

    def filter(self, request: HttpRequest) -> HttpRequest:
        token = self.auth_cache.get(self.cache_key)
        token = getattr(token, "token", token)
        return request.with_header(AUTH_TOKEN, token)


class UserAgent(HttpRequestFilter):
    def __init__(self, user_agent: str) -> None:
        self.user_agent = user_agent

    def filter(self, request: HttpRequest) -> HttpRequest:
        if request.get_first_header_or_none("User-Agent"):
            return request
        return request.with_header("User-Agent", self.user_agent)
