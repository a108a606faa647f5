"""HTTP layer exceptions."""

from typing import TYPE_CHECKING, Any, Optional

from pyclouds.domain.base.exceptions import InfrastructureError

if TYPE_CHECKING:
    from pyclouds.infrastructure.http.command import HttpCommand
    from pyclouds.infrastructure.http.models import HttpResponse


class HttpResponseError(InfrastructureError):
    """A request completed with a status the caller did not expect."""

    def __init__(
        self,
        message: str,
        command: Optional["HttpCommand"] = None,
        response: Optional["HttpResponse"] = None,
        content: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.command = command
        self.response = response
        self.content = content
        details = dict(details or {})
        if response is not None:
            details.setdefault("status_code", response.status_code)
        if command is not None:
            details.setdefault("method", command.current_request.method)
            details.setdefault("endpoint", command.current_request.endpoint)
        super().__init__(message, details=details)

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None


class HttpTransportError(InfrastructureError):
    """The request could not be sent or the response could not be read."""

    def __init__(self, message: str, command: Optional["HttpCommand"] = None) -> None:
        self.command = command
        details = {}
        if command is not None:
            details = {
                "method": command.current_request.method,
                "endpoint": command.current_request.endpoint,
            }
        super().__init__(message, details=details)


class ResponseParseError(InfrastructureError):
    """A response body could not be turned into a result."""

    def __init__(
        self,
        message: str,
        request: Any = None,
        response: Optional["HttpResponse"] = None,
    ) -> None:
        self.request = request
        self.response = response
        details: dict[str, Any] = {}
        if request is not None:
            details["request"] = getattr(request, "request_line", str(request))
        if response is not None:
            details["status_code"] = response.status_code
        super().__init__(message, details=details)
