"""Retry state for a single logical HTTP call."""

from typing import Optional

from pyclouds.infrastructure.http.models import HttpRequest


class HttpCommand:
    """
    Holds the request being sent and the counters the retry handlers consult.

    ``current_request`` may be rewritten by redirects and filters; the
    original request is kept for error reporting.
    """

    def __init__(self, request: HttpRequest) -> None:
        self.original_request = request
        self.current_request = request
        self.failure_count = 0
        self.redirect_count = 0
        self.exception: Optional[BaseException] = None

    def increment_failure_count(self) -> int:
        self.failure_count += 1
        return self.failure_count

    def increment_redirect_count(self) -> int:
        self.redirect_count += 1
        return self.redirect_count

    def is_replayable(self) -> bool:
        payload = self.current_request.payload
        return payload is None or payload.is_repeatable()

    def set_current_request(self, request: HttpRequest) -> None:
        self.current_request = request

    def __repr__(self) -> str:
        return (
            f"HttpCommand(request={self.current_request.request_line!r}, "
            f"failures={self.failure_count}, redirects={self.redirect_count})"
        )
