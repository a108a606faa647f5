"""Unit tests for the HTTP retry handlers."""

import io
import time
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import Mock

import pytest

from pyclouds.domain.base.payload import ContentMetadata, Payload
from pyclouds.infrastructure.http.command import HttpCommand
from pyclouds.infrastructure.http.handlers.backoff import BackoffLimitedRetryHandler
from pyclouds.infrastructure.http.handlers.base import AlwaysRetry, NeverRetry
from pyclouds.infrastructure.http.handlers.delegating import (
    ChainedRetryHandler,
    DelegatingRetryHandler,
)
from pyclouds.infrastructure.http.handlers.rate_limit import RateLimitRetryHandler
from pyclouds.infrastructure.http.handlers.redirection import RedirectionRetryHandler
from pyclouds.infrastructure.http.handlers.renew import RetryOnRenew
from pyclouds.infrastructure.http.models import HttpRequest, HttpResponse


def _command(method="GET", endpoint="http://api.example.com/v1/items", **kwargs):
    return HttpCommand(HttpRequest(method, endpoint, **kwargs))


def _stream_payload(data=b"body"):
    return Payload.from_stream(io.BytesIO(data), content_length=len(data))


@pytest.mark.unit
class TestBackoffLimitedRetryHandler:
    """Test cases for exponential backoff."""

    def setup_method(self):
        self.handler = BackoffLimitedRetryHandler()

    def test_delays_grow_quadratically_and_are_capped(self, no_sleep):
        command = _command()

        results = [self.handler.should_retry_request(command, HttpResponse(500)) for _ in range(5)]

        assert results == [True] * 5
        delays = [c.args[0] for c in no_sleep.call_args_list]
        assert delays == pytest.approx([0.05, 0.2, 0.45, 0.5, 0.5])

    def test_gives_up_after_retry_limit(self, no_sleep):
        command = _command()
        for _ in range(5):
            self.handler.should_retry_request(command, HttpResponse(503))

        assert not self.handler.should_retry_request(command, HttpResponse(503))
        assert command.failure_count == 6
        assert no_sleep.call_count == 5

    def test_non_replayable_command_is_not_retried(self, no_sleep):
        command = _command("PUT", payload=_stream_payload())

        assert not self.handler.should_retry_request(command, HttpResponse(500))
        assert command.failure_count == 0
        no_sleep.assert_not_called()

    def test_io_errors_use_the_same_budget(self, no_sleep):
        handler = BackoffLimitedRetryHandler(retry_count_limit=1)
        command = _command()

        assert handler.should_retry_request_on_error(command, ConnectionError("reset"))
        assert not handler.should_retry_request_on_error(command, ConnectionError("reset"))

    def test_explicit_period_power_and_cap(self, no_sleep):
        delay = self.handler.impose_backoff_exponential_delay(
            3, "test", period=1.0, pow=2, max_period=5.0
        )

        assert delay == 5.0
        no_sleep.assert_called_once_with(5.0)

    def test_negative_limits_rejected(self):
        with pytest.raises(ValueError):
            BackoffLimitedRetryHandler(retry_count_limit=-1)
        with pytest.raises(ValueError):
            BackoffLimitedRetryHandler(delay_start=-0.1)


@pytest.mark.unit
class TestRedirectionRetryHandler:
    """Test cases for following redirects."""

    def setup_method(self):
        self.handler = RedirectionRetryHandler()

    def test_redirect_to_other_host_drops_host_header(self):
        command = _command(headers={"Host": "api.example.com"})
        response = HttpResponse(302, headers={"Location": "https://mirror.example.net/v1/items"})

        assert self.handler.should_retry_request(command, response)
        assert command.current_request.endpoint == "https://mirror.example.net/v1/items"
        assert command.current_request.get_first_header_or_none("Host") is None
        assert command.original_request.endpoint == "http://api.example.com/v1/items"

    def test_relative_location_keeps_host_header(self):
        command = _command(headers={"Host": "api.example.com"})
        response = HttpResponse(307, headers={"Location": "/v2/items"})

        assert self.handler.should_retry_request(command, response)
        assert command.current_request.endpoint == "http://api.example.com/v2/items"
        assert command.current_request.get_first_header_or_none("Host") == "api.example.com"

    def test_see_other_turns_post_into_get(self):
        payload = Payload(b"{}", ContentMetadata(content_type="application/json"))
        command = _command("POST", payload=payload, headers={"Content-Type": "application/json"})
        response = HttpResponse(303, headers={"Location": "http://api.example.com/v1/items/7"})

        assert self.handler.should_retry_request(command, response)
        request = command.current_request
        assert request.method == "GET"
        assert request.payload is None
        assert request.get_first_header_or_none("Content-Type") is None

    def test_redirect_to_same_url_backs_off(self, no_sleep):
        command = _command()
        response = HttpResponse(302, headers={"Location": command.current_request.endpoint})

        assert self.handler.should_retry_request(command, response)
        no_sleep.assert_called_once()
        assert command.current_request is command.original_request

    def test_missing_location_is_not_retried(self):
        assert not self.handler.should_retry_request(_command(), HttpResponse(301))

    def test_redirect_limit(self):
        handler = RedirectionRetryHandler(retry_count_limit=1)
        command = _command()

        assert handler.should_retry_request(
            command, HttpResponse(302, headers={"Location": "http://a.example.com/"})
        )
        assert not handler.should_retry_request(
            command, HttpResponse(302, headers={"Location": "http://b.example.com/"})
        )

    def test_not_modified_is_not_a_redirect(self):
        response = HttpResponse(304, headers={"Location": "http://other.example.com/"})

        assert not self.handler.should_retry_request(_command(), response)


@pytest.mark.unit
class TestRateLimitRetryHandler:
    """Test cases for 429 handling."""

    def setup_method(self):
        self.handler = RateLimitRetryHandler()

    def test_retry_after_seconds(self, no_sleep):
        response = HttpResponse(429, headers={"Retry-After": "2"})

        assert self.handler.should_retry_request(_command(), response)
        no_sleep.assert_called_once_with(2.0)

    def test_retry_after_http_date(self, no_sleep):
        when = datetime.now(timezone.utc) + timedelta(seconds=30)
        response = HttpResponse(429, headers={"Retry-After": format_datetime(when, usegmt=True)})

        assert self.handler.should_retry_request(_command(), response)
        waited = no_sleep.call_args.args[0]
        assert 0 < waited <= 31

    def test_rate_limit_reset_epoch(self, no_sleep):
        reset = str(int(time.time()) + 10)
        response = HttpResponse(429, headers={"X-RateLimit-Reset": reset})

        assert self.handler.should_retry_request(_command(), response)
        assert 0 <= no_sleep.call_args.args[0] <= 11

    def test_wait_longer_than_maximum_is_not_retried(self, no_sleep):
        response = HttpResponse(429, headers={"Retry-After": "121"})

        assert not self.handler.should_retry_request(_command(), response)
        no_sleep.assert_not_called()

    def test_no_hint_is_not_retried(self, no_sleep):
        assert not self.handler.should_retry_request(_command(), HttpResponse(429))

    def test_other_statuses_ignored(self):
        assert not self.handler.should_retry_request(
            _command(), HttpResponse(503, headers={"Retry-After": "1"})
        )

    def test_retry_limit(self, no_sleep):
        handler = RateLimitRetryHandler(retry_count_limit=1)
        command = _command()
        response = HttpResponse(429, headers={"Retry-After": "0"})

        assert handler.should_retry_request(command, response)
        assert not handler.should_retry_request(command, response)


@pytest.mark.unit
class TestRetryOnRenew:
    """Test cases for re-authentication on 401."""

    def setup_method(self):
        self.cache = Mock()
        self.backoff = Mock(spec=BackoffLimitedRetryHandler)
        self.handler = RetryOnRenew(self.cache, backoff_handler=self.backoff)

    def test_first_unauthorized_retries_without_delay(self, no_sleep):
        command = _command(headers={"X-Auth-Token": "expired"})

        assert self.handler.should_retry_request(command, HttpResponse(401))
        self.cache.invalidate_all.assert_called_once()
        no_sleep.assert_not_called()
        assert self.handler.retry_count(command) == 1

    def test_later_unauthorized_responses_wait_before_retrying(self, no_sleep):
        command = _command(headers={"X-Auth-Token": "expired"})

        results = [self.handler.should_retry_request(command, HttpResponse(401)) for _ in range(5)]

        assert results == [True, True, True, True, False]
        assert [c.args[0] for c in no_sleep.call_args_list] == [5.0, 5.0, 5.0]
        assert self.cache.invalidate_all.call_count == 4

    def test_authentication_request_is_never_retried(self):
        command = _command(headers={"X-Auth-User": "user", "X-Auth-Key": "key"})

        assert not self.handler.should_retry_request(command, HttpResponse(401))
        self.cache.invalidate_all.assert_not_called()

    def test_payload_released_on_unauthorized(self):
        response = HttpResponse(401, payload=_stream_payload(b"denied"))

        self.handler.should_retry_request(_command(), response)

        assert response.payload.released

    def test_request_timeout_goes_to_backoff(self):
        self.backoff.should_retry_request.return_value = True
        command = _command()
        response = HttpResponse(408)

        assert self.handler.should_retry_request(command, response)
        self.backoff.should_retry_request.assert_called_once_with(command, response)

    def test_forbidden_is_not_retried(self):
        assert not self.handler.should_retry_request(_command(), HttpResponse(403))
        self.cache.invalidate_all.assert_not_called()


@pytest.mark.unit
class TestDelegatingRetryHandler:
    """Test cases for routing by status family."""

    def setup_method(self):
        self.redirection = Mock()
        self.client = Mock()
        self.server = Mock()
        self.handler = DelegatingRetryHandler(self.redirection, self.client, self.server)

    @pytest.mark.parametrize(
        "status,target",
        [(301, "redirection"), (404, "client"), (429, "client"), (500, "server"), (503, "server")],
    )
    def test_routes_by_family(self, status, target):
        command = _command()
        response = HttpResponse(status)

        self.handler.should_retry_request(command, response)

        getattr(self, target).should_retry_request.assert_called_once_with(command, response)

    def test_client_errors_not_retried_by_default(self):
        handler = DelegatingRetryHandler()

        assert not handler.should_retry_request(_command(), HttpResponse(400))

    def test_chained_handler_stops_at_first_yes(self):
        last = Mock()
        chained = ChainedRetryHandler([NeverRetry(), AlwaysRetry(), last])

        assert chained.should_retry_request(_command(), HttpResponse(429))
        last.should_retry_request.assert_not_called()
