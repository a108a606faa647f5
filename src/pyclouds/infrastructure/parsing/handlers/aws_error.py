"""AWS XML error envelope."""

from typing import Optional

from pydantic import BaseModel, Field

from pyclouds.infrastructure.parsing.sax import HandlerWithResult


class AWSError(BaseModel):
    """Error details returned by S3 and the EC2 query API."""

    code: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = None
    resource: Optional[str] = None
    details: dict[str, str] = Field(default_factory=dict)

    @property
    def string_signed(self) -> Optional[str]:
        return self.details.get("StringToSign")


class AWSErrorHandler(HandlerWithResult[AWSError]):
    """
    Parse ``<Error>`` documents, including the EC2 form nested under
    ``<Response><Errors>``. Unrecognised elements land in ``details``.
    """

    _ENVELOPE = frozenset({"Error", "Errors", "Response", "ErrorResponse"})

    def __init__(self) -> None:
        super().__init__()
        self.error = AWSError()

    def get_result(self) -> AWSError:
        return self.error

    def end(self, name: str) -> None:
        value = self.text()
        if name == "Code":
            self.error.code = value
        elif name == "Message":
            self.error.message = value
        elif name in ("RequestId", "RequestID"):
            self.error.request_id = value
        elif name == "Resource":
            self.error.resource = value
        elif name not in self._ENVELOPE and value:
            self.error.details[name] = value
