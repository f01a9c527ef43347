"""Network error taxonomy and server error-message extraction."""

from __future__ import annotations

import json
import re

DEFAULT_SERVER_MESSAGE = "The server encountered an issue."

_MESSAGE_KEYS = ("message", "error", "errorMessage")

_MESSAGE_PATTERN = re.compile(r'"message"\s*:\s*"([^"]+)"')

# "400 Bad Request: ..." and similar status prefixes on plain-text bodies
_TECHNICAL_PREFIX = re.compile(
    r"^(?:\d{3}\s+)?(?:Bad Request|Unauthorized|Internal Server Error|Forbidden"
    r"|Error|Failure|Conflict)[:\- ]*",
    re.IGNORECASE,
)


class NetworkError(Exception):
    """Base class for all gateway failures.

    Attributes:
        kind: Short machine-readable category.
        message: User-facing description.
    """

    kind = "unknown"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidEndpointError(NetworkError):
    kind = "invalid_endpoint"

    def __init__(self, url: str = ""):
        self.url = url
        super().__init__("Configuration error. Please contact support.")


class NoResponseError(NetworkError):
    kind = "no_response"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__("No data received from the server. Please try again.")


class MalformedResponseError(NetworkError):
    kind = "malformed_response"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(
            "We couldn't read the server's response. Please check for app updates."
        )


class ServerError(NetworkError):
    kind = "server_error"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class UnauthorizedError(NetworkError):
    kind = "unauthorized"

    def __init__(self):
        super().__init__("Your session has expired. Please log in again.")


class UnknownNetworkError(NetworkError):
    kind = "unknown"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"A network error occurred: {detail}")


def _message_from_json(data, keys=_MESSAGE_KEYS) -> str | None:
    if not isinstance(data, dict):
        return None
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def extract_message(body: bytes | str, default: str = DEFAULT_SERVER_MESSAGE) -> str:
    """Pull a human-readable message out of an error response body.

    Tries, in order:
      1. direct JSON field lookup (message / error / errorMessage)
      2. JSON double-encoded inside a string: strip the quotes and re-parse
      3. regex pluck of a "message": "..." pair
      4. plain text with a technical status prefix stripped
    Falls back to ``default`` when nothing usable is found.
    """
    if isinstance(body, bytes):
        text = body.decode("utf-8", errors="replace")
    else:
        text = body or ""

    try:
        msg = _message_from_json(json.loads(text))
        if msg:
            return msg
    except json.JSONDecodeError:
        pass

    unwrapped = text.strip().strip('"')
    candidates = [unwrapped, unwrapped.replace('\\"', '"')]
    for candidate in candidates:
        try:
            msg = _message_from_json(json.loads(candidate), ("message", "error"))
        except json.JSONDecodeError:
            continue
        if msg:
            return msg

    match = _MESSAGE_PATTERN.search(text.replace('\\"', '"'))
    if match:
        return match.group(1)

    clean = _TECHNICAL_PREFIX.sub("", text.strip(), count=1).strip()
    if clean and not clean.startswith("{"):
        return clean

    return default
