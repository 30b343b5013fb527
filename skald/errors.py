"""Error hierarchy for the Skald client.

Every failure surfaced to callers is a SkaldError. Streaming and blocking
calls share HttpStatusError so callers handle both paths the same way.
"""

from typing import Optional


class SkaldError(Exception):
    """Structured error with code, status_code and raw response body."""

    code = "skald_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": str(self),
            "status_code": self.status_code,
        }


class ConfigError(SkaldError, ValueError):
    """Configuration is missing or malformed."""

    code = "config_error"


class TransportInitError(SkaldError):
    """The connection to the API could not be opened."""

    code = "network_error"


class TransportReadError(SkaldError):
    """A read from an open response failed at the transport layer."""

    code = "network_error"


class HttpStatusError(SkaldError):
    """The API answered with a non-2xx status."""

    code = "api_error"

    def __init__(self, status_code: int, body: str):
        super().__init__(
            f"Skald API error ({status_code}): {body}",
            status_code=status_code,
            body=body,
        )


class ResponseDecodeError(SkaldError):
    """A blocking call returned a body that is not a JSON object."""

    code = "decode_error"
