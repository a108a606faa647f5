"""Unit tests for the command executor, request filters and the HttpApi facade."""

from collections import deque
from unittest.mock import MagicMock, Mock

import pytest

from pyclouds.config.schemas import HttpConfig
from pyclouds.domain.base.exceptions import (
    AuthorizationError,
    RateLimitExceededError,
    ResourceNotFoundError,
)
from pyclouds.domain.base.payload import Payload
from pyclouds.infrastructure.cache.memoize import ExpiringCache
from pyclouds.infrastructure.http.api import HttpApi
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.errors import HttpResponseError, HttpTransportError
from pyclouds.infrastructure.http.executor import (
    BaseHttpCommandExecutorService,
    RequestsHttpCommandExecutorService,
)
from pyclouds.infrastructure.http.fallbacks import Fallbacks
from pyclouds.infrastructure.http.filters import (
    BasicAuthentication,
    TokenAuthentication,
    UserAgent,
)
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.delegating import (
    DelegatingRetryHandler,
    retry_handler_from_config,
)
from pyclouds.infrastructure.http.handlers.rate_limit import RateLimitRetryHandler
from pyclouds.infrastructure.http.handlers.renew import RetryOnRenew
from pyclouds.infrastructure.http.models import HttpRequest, HttpResponse
from pyclouds.infrastructure.http.token_auth import TokenAuthenticatedApi

ENDPOINT = "https://api.example.com/v1"


class ScriptedExecutor(BaseHttpCommandExecutorService):
    """Replays queued responses or raises queued errors, recording what was sent."""

    def __init__(self, *outcomes, **kwargs):
        super().__init__(**kwargs)
        self.outcomes = deque(outcomes)
        self.sent = []

    def _send(self, request):
        self.sent.append(request)
        outcome = self.outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.mark.unit
class TestBaseHttpCommandExecutorService:
    """Test cases for the send and retry loop."""

    def test_success_returns_response(self):
        executor = ScriptedExecutor(HttpResponse(200, payload=Payload(b"ok")))

        response = executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT)))

        assert response.status_code == 200
        assert response.content() == b"ok"
        assert len(executor.sent) == 1

    def test_server_error_is_retried(self, no_sleep):
        executor = ScriptedExecutor(HttpResponse(503), HttpResponse(200))
        command = HttpCommand(HttpRequest("GET", ENDPOINT))

        assert executor.invoke(command).status_code == 200
        assert len(executor.sent) == 2
        assert command.failure_count == 1

    def test_server_error_after_retries_raises(self, no_sleep):
        retry = DelegatingRetryHandler(
            server_error_retry_handler=BackoffLimitedRetryHandler(retry_count_limit=1)
        )
        executor = ScriptedExecutor(HttpResponse(500), HttpResponse(500), retry_handler=retry)

        with pytest.raises(HttpResponseError) as exc_info:
            executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT)))

        assert exc_info.value.status_code == 500
        assert len(executor.sent) == 2

    def test_client_error_is_mapped_without_retry(self):
        executor = ScriptedExecutor(HttpResponse(404, payload=Payload(b"no such item")))

        with pytest.raises(ResourceNotFoundError, match="no such item"):
            executor.invoke(HttpCommand(HttpRequest("GET", f"{ENDPOINT}/items/9")))

        assert len(executor.sent) == 1

    def test_redirect_is_followed(self):
        executor = ScriptedExecutor(
            HttpResponse(301, headers={"Location": "https://eu.api.example.com/v1"}),
            HttpResponse(200),
        )

        executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT)))

        assert executor.sent[1].endpoint == "https://eu.api.example.com/v1"

    def test_io_error_on_idempotent_request_is_retried(self, no_sleep):
        executor = ScriptedExecutor(ConnectionResetError("reset by peer"), HttpResponse(204))

        response = executor.invoke(HttpCommand(HttpRequest("PUT", ENDPOINT, payload=Payload(b"x"))))

        assert response.status_code == 204
        assert len(executor.sent) == 2

    def test_io_error_on_post_is_not_retried(self):
        error = ConnectionResetError("reset by peer")
        executor = ScriptedExecutor(error, HttpResponse(200))

        with pytest.raises(HttpTransportError) as exc_info:
            executor.invoke(HttpCommand(HttpRequest("POST", ENDPOINT)))

        assert exc_info.value.__cause__ is error
        assert exc_info.value.details["method"] == "POST"
        assert len(executor.sent) == 1

    def test_filters_apply_to_the_sent_request_only(self):
        executor = ScriptedExecutor(HttpResponse(200))
        request = HttpRequest("GET", ENDPOINT, filters=[UserAgent("pyclouds-test/1.0")])
        command = HttpCommand(request)

        executor.invoke(command)

        assert executor.sent[0].get_first_header_or_none("User-Agent") == "pyclouds-test/1.0"
        assert command.current_request.get_first_header_or_none("User-Agent") is None

    def test_unauthorized_token_is_renewed(self):
        tokens = iter(["stale", "fresh"])
        cache = ExpiringCache(lambda key: next(tokens))
        retry = DelegatingRetryHandler(client_error_retry_handler=RetryOnRenew(cache))
        executor = ScriptedExecutor(HttpResponse(401), HttpResponse(200), retry_handler=retry)
        request = HttpRequest("GET", ENDPOINT, filters=[TokenAuthentication(cache, "user")])

        executor.invoke(HttpCommand(request))

        assert [r.get_first_header_or_none("X-Auth-Token") for r in executor.sent] == [
            "stale",
            "fresh",
        ]


@pytest.mark.unit
class TestRequestsHttpCommandExecutorService:
    """Test cases for the requests-backed transport."""

    def setup_method(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.session.request.return_value = Mock(
            status_code=200,
            reason="OK",
            headers={"Content-Type": "text/plain"},
            content=b"hello",
        )
        self.config = HttpConfig(connect_timeout=3, read_timeout=7, user_agent="agent/2")
        self.executor = RequestsHttpCommandExecutorService(self.config, session=self.session)

    def test_sends_through_session_without_following_redirects(self):
        payload = Payload.from_bytes(b"{}", content_type="application/json")

        response = self.executor.invoke(HttpCommand(HttpRequest("PUT", ENDPOINT, payload=payload)))

        kwargs = self.session.request.call_args.kwargs
        assert self.session.request.call_args.args == ("PUT", ENDPOINT)
        assert kwargs["allow_redirects"] is False
        assert kwargs["timeout"] == (3, 7)
        assert kwargs["data"] == b"{}"
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert response.content() == b"hello"
        assert response.payload.metadata.content_type == "text/plain"

    def test_user_agent_set_on_session(self):
        assert self.session.headers["User-Agent"] == "agent/2"

    def test_rate_limit_wait_comes_from_config(self, no_sleep):
        self.session.request.return_value = Mock(
            status_code=429, reason="Too Many Requests", headers={"Retry-After": "45"}, content=b""
        )
        executor = RequestsHttpCommandExecutorService(
            HttpConfig(max_rate_limit_wait=30), session=self.session
        )

        with pytest.raises(RateLimitExceededError):
            executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT)))

        assert self.session.request.call_count == 1
        no_sleep.assert_not_called()

    def test_close_closes_session(self):
        self.executor.close()

        self.session.close.assert_called_once()


@pytest.mark.unit
class TestRequestFilters:
    """Test cases for authentication and user agent filters."""

    def test_basic_authentication(self):
        request = BasicAuthentication("user", "pass").filter(HttpRequest("GET", ENDPOINT))

        assert request.get_first_header_or_none("Authorization") == "Basic dXNlcjpwYXNz"

    def test_basic_authentication_requires_credentials(self):
        with pytest.raises(ValueError):
            BasicAuthentication("user", None)

    def test_token_authentication_reads_cache_each_time(self):
        loads = []

        def loader(key):
            loads.append(key)
            return Mock(token=f"token-{len(loads)}")

        cache = ExpiringCache(loader)
        token_filter = TokenAuthentication(cache, ("user", "key"))

        first = token_filter.filter(HttpRequest("GET", ENDPOINT))
        again = token_filter.filter(HttpRequest("GET", ENDPOINT))
        cache.invalidate_all()
        renewed = token_filter.filter(HttpRequest("GET", ENDPOINT))

        assert first.get_first_header_or_none("X-Auth-Token") == "token-1"
        assert again.get_first_header_or_none("X-Auth-Token") == "token-1"
        assert renewed.get_first_header_or_none("X-Auth-Token") == "token-2"

    def test_user_agent_does_not_replace_existing(self):
        request = HttpRequest("GET", ENDPOINT, headers={"User-Agent": "custom"})

        assert UserAgent("pyclouds").filter(request).get_first_header_or_none("User-Agent") == "custom"


@pytest.mark.unit
class TestHttpApi:
    """Test cases for the HttpApi facade."""

    def _api(self, *outcomes):
        self.executor = ScriptedExecutor(*outcomes)
        return HttpApi(ENDPOINT + "/", self.executor, filters=[UserAgent("pyclouds")])

    def test_builds_url_with_path_and_query(self):
        api = self._api(HttpResponse(200))

        api.get("/items", query={"limit": 10, "marker": "a b"})

        sent = self.executor.sent[0]
        assert sent.endpoint == f"{ENDPOINT}/items?limit=10&marker=a+b"
        assert sent.get_first_header_or_none("User-Agent") == "pyclouds"

    def test_parser_receives_response_and_request(self):
        api = self._api(HttpResponse(200, payload=Payload(b"42")))

        result = api.get("answer", parser=lambda response, request: (int(response.content()), request.method))

        assert result == (42, "GET")

    def test_delete_of_missing_resource_is_true(self):
        api = self._api(HttpResponse(404))

        assert api.delete("items/1") is True

    def test_exists(self):
        assert self._api(HttpResponse(200)).exists("items/1") is True
        assert self._api(HttpResponse(404)).exists("items/2") is False

    def test_fallback_converts_not_found(self):
        api = self._api(HttpResponse(404))

        assert api.get("items/3", fallback=Fallbacks.null_on_not_found) is None

    def test_fallback_does_not_hide_other_errors(self):
        api = self._api(HttpResponse(403))

        with pytest.raises(AuthorizationError):
            api.get("items/3", fallback=Fallbacks.null_on_not_found)


@pytest.mark.unit
class TestRetryHandlerFromConfig:
    """Test cases for the retry chain built from HttpConfig."""

    def test_rate_limited_request_is_retried(self, no_sleep):
        retry = retry_handler_from_config(HttpConfig(max_rate_limit_wait=10))
        executor = ScriptedExecutor(
            HttpResponse(429, headers={"Retry-After": "3"}), HttpResponse(200), retry_handler=retry
        )

        assert executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT))).status_code == 200
        no_sleep.assert_called_once_with(3.0)

    def test_rate_limit_longer_than_configured_wait_fails(self, no_sleep):
        retry = retry_handler_from_config(HttpConfig(max_rate_limit_wait=10))
        executor = ScriptedExecutor(
            HttpResponse(429, headers={"Retry-After": "11"}), retry_handler=retry
        )

        with pytest.raises(RateLimitExceededError):
            executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT)))
        assert len(executor.sent) == 1

    def test_unauthorized_without_auth_cache_is_final(self):
        executor = ScriptedExecutor(HttpResponse(401), retry_handler=retry_handler_from_config())

        with pytest.raises(AuthorizationError):
            executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT)))

    def test_unauthorized_with_auth_cache_renews(self):
        cache = Mock()
        executor = ScriptedExecutor(
            HttpResponse(401),
            HttpResponse(200),
            retry_handler=retry_handler_from_config(auth_cache=cache),
        )

        assert executor.invoke(HttpCommand(HttpRequest("GET", ENDPOINT))).status_code == 200
        cache.invalidate_all.assert_called_once()

    def test_limits_come_from_config(self):
        retry = retry_handler_from_config(
            HttpConfig(max_retries=2, max_redirects=7, max_rate_limit_wait=15)
        )

        (rate_limit,) = retry.client_error_retry_handler.handlers
        assert isinstance(rate_limit, RateLimitRetryHandler)
        assert rate_limit.retry_count_limit == 2
        assert rate_limit.max_rate_limit_wait == 15
        assert retry.redirection_retry_handler.retry_count_limit == 7
        assert retry.server_error_retry_handler.retry_count_limit == 2


AUTH_ENDPOINT = "https://auth.example.com/v1.0"


def _auth_response(token, **headers):
    return HttpResponse(204, headers={"X-Auth-Token": token, **headers})


@pytest.mark.unit
class TestTokenAuthenticatedApi:
    """Test cases for the token-authenticated HttpApi."""

    def _api(self, *outcomes, **kwargs):
        return TokenAuthenticatedApi(
            ENDPOINT,
            AUTH_ENDPOINT,
            "user",
            "secret",
            executor_factory=lambda retry: ScriptedExecutor(*outcomes, retry_handler=retry),
            **kwargs,
        )

    def test_authenticates_once_and_sends_token(self):
        api = self._api(_auth_response("t1"), HttpResponse(200), HttpResponse(200))

        api.get("a")
        api.get("b")

        auth, first, second = api.executor.sent
        assert auth.endpoint == AUTH_ENDPOINT
        assert auth.get_first_header_or_none("X-Auth-User") == "user"
        assert auth.get_first_header_or_none("X-Auth-Key") == "secret"
        assert first.get_first_header_or_none("X-Auth-Token") == "t1"
        assert second.get_first_header_or_none("X-Auth-Token") == "t1"

    def test_rejected_token_is_renewed(self):
        api = self._api(
            _auth_response("stale"), HttpResponse(401), _auth_response("fresh"), HttpResponse(200)
        )

        assert api.get("items").status_code == 200

        sent = api.executor.sent
        assert [r.endpoint for r in sent] == [
            AUTH_ENDPOINT,
            f"{ENDPOINT}/items",
            AUTH_ENDPOINT,
            f"{ENDPOINT}/items",
        ]
        assert sent[3].get_first_header_or_none("X-Auth-Token") == "fresh"

    def test_rejected_credentials_are_not_retried(self):
        api = self._api(HttpResponse(401))

        with pytest.raises(AuthorizationError):
            api.get("items")
        assert len(api.executor.sent) == 1

    def test_missing_token_fails(self):
        api = self._api(HttpResponse(204))

        with pytest.raises(AuthorizationError, match="X-Auth-Token"):
            api.get("items")

    def test_endpoints_from_authentication(self):
        api = self._api(
            _auth_response("t1", **{"X-Storage-Url": "https://storage.example.com/v1/acct"})
        )

        assert api.endpoints == {"x-storage-url": "https://storage.example.com/v1/acct"}

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            TokenAuthenticatedApi(ENDPOINT, AUTH_ENDPOINT, "user", "")

    def test_close_drops_token_and_closes_executor(self):
        api = self._api(_auth_response("t1"), HttpResponse(200))
        api.get("a")
        api.executor.close = Mock()

        api.close()

        assert len(api.auth_cache) == 0
        api.executor.close.assert_called_once()
        assert "secret" not in repr(api)
