"""Error types raised by the on-ramp SDK.

Transport failures are always retryable. API errors carry whatever the server
sent back so callers can show it verbatim.
"""

import json
from typing import Any, Optional


class OnrampError(Exception):
    """Base class for all SDK errors."""


class TransportError(OnrampError):
    """The payment service could not be reached (connect, read, timeout)."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ApiError(OnrampError):
    """Non-success HTTP status returned by the payment service."""

    def __init__(self, status_code: int, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(self._render())

    def _render(self) -> str:
        if self.payload in (None, "", {}, []):
            return f"API error: {self.status_code}"
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, indent=2)


class PreconditionError(OnrampError):
    """An operation was attempted before its inputs were available."""


class NotConfiguredError(PreconditionError):
    """No API credential is configured."""


class ResponseFormatError(OnrampError):
    """A successful response did not match the expected shape."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload
