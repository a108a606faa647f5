"""
HttpApi for services that hand out a session token.

Authentication is a request carrying ``X-Auth-User`` and ``X-Auth-Key``; the
service answers with ``X-Auth-Token`` plus ``X-*-Url`` headers naming its
endpoints. Every later request carries the token.
"""

from collections.abc import Callable
from typing import Optional

from pydantic import BaseModel, Field

from pyclouds.config.schemas import HttpConfig
from pyclouds.domain.base.exceptions import AuthorizationError
from pyclouds.infrastructure.cache.memoize import ExpiringCache
from pyclouds.infrastructure.http.api import HttpApi
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.executor import (
    BaseHttpCommandExecutorService,
    RequestsHttpCommandExecutorService,
)
from pyclouds.infrastructure.http.filters import TokenAuthentication, UserAgent
from pyclouds.infrastructure.http.handlers.base import HttpRetryHandler
from pyclouds.infrastructure.http.handlers.delegating import retry_handler_from_config
from pyclouds.infrastructure.http.handlers.renew import AUTH_KEY, AUTH_TOKEN, AUTH_USER
from pyclouds.infrastructure.http.models import HttpRequest
from pyclouds.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

HttpExecutorFactory = Callable[[HttpRetryHandler], BaseHttpCommandExecutorService]


class AuthenticationResponse(BaseModel):
    token: str
    endpoints: dict[str, str] = Field(default_factory=dict)

    def __repr__(self) -> str:
        return f"AuthenticationResponse(token=****, endpoints={self.endpoints!r})"

    __str__ = __repr__


def authenticate(
    executor: BaseHttpCommandExecutorService, auth_endpoint: str, identity: str, credential: str
) -> AuthenticationResponse:
    """Exchange an identity and key for a token."""
    request = HttpRequest("GET", auth_endpoint, headers={AUTH_USER: identity, AUTH_KEY: credential})
    response = executor.invoke(HttpCommand(request))
    try:
        token = response.get_first_header_or_none(AUTH_TOKEN)
        endpoints = {
            name.lower(): value
            for name, value in response.headers.items()
            if name.lower().startswith("x-") and name.lower().endswith("-url")
        }
    finally:
        response.release_payload()
    if not token:
        raise AuthorizationError(
            f"No {AUTH_TOKEN} in the response from {auth_endpoint}",
            details={"identity": identity},
        )
    logger.debug("Authenticated %s against %s", identity, auth_endpoint)
    return AuthenticationResponse(token=token, endpoints=endpoints)


class TokenAuthenticatedApi(HttpApi):
    """
    ``HttpApi`` whose requests carry a token from ``auth_endpoint``.

    The token is cached for ``token_ttl`` seconds (forever when None). A 401
    on a regular request invalidates it and the request is retried with a
    fresh token; a 401 on the authentication request itself is final.
    ``executor_factory`` receives the retry handler built from ``config``.
    """

    def __init__(
        self,
        endpoint: str,
        auth_endpoint: str,
        identity: str,
        credential: str,
        config: Optional[HttpConfig] = None,
        executor_factory: Optional[HttpExecutorFactory] = None,
        token_ttl: Optional[float] = None,
    ) -> None:
        if not identity or not credential:
            raise ValueError("identity and credential are required")
        config = config or HttpConfig()
        self.auth_endpoint = auth_endpoint
        self.identity = identity
        self._credential = credential
        self.auth_cache: ExpiringCache[str, AuthenticationResponse] = ExpiringCache(
            self._authenticate, ttl=token_ttl
        )
        retry_handler = retry_handler_from_config(config, auth_cache=self.auth_cache)
        if executor_factory is None:
            executor = RequestsHttpCommandExecutorService(config, retry_handler=retry_handler)
        else:
            executor = executor_factory(retry_handler)
        super().__init__(
            endpoint,
            executor,
            filters=[TokenAuthentication(self.auth_cache, identity), UserAgent(config.user_agent)],
        )

    def _authenticate(self, identity: str) -> AuthenticationResponse:
        return authenticate(self.executor, self.auth_endpoint, identity, self._credential)

    @property
    def endpoints(self) -> dict[str, str]:
        """Endpoints advertised by the current authentication."""
        return dict(self.auth_cache.get(self.identity).endpoints)

    def close(self) -> None:
        self.auth_cache.invalidate_all()
        self.executor.close()

    def __repr__(self) -> str:
        return f"TokenAuthenticatedApi({self.endpoint!r}, identity={self.identity!r})"
