"""
HAR Replay Errors

Exception taxonomy for the replay engine.

Per-request errors carry the status code, origin tag and plain-text body
they are served with. Load-time errors are fatal to the process.
"""

import json
from typing import Any, Optional


ORIGIN_MATCHED_ENTRY = 'matchedentry'
ORIGIN_NO_ENTRY_MATCH = 'noentrymatch'
ORIGIN_CLIENT_BLOCKED = 'clientblocked'


class ReplayError(Exception):
    """Base class for all replay engine errors."""


class RequestError(ReplayError):
    """An error resolved into a response for the request that caused it."""

    status_code = 500
    origin = ORIGIN_NO_ENTRY_MATCH

    def body(self) -> str:
        return str(self)


class NoMatchError(RequestError):
    """No recorded exchange and no local mapping correspond to the request."""

    status_code = 404
    origin = ORIGIN_NO_ENTRY_MATCH

    def __init__(self, method: str, url: str):
        super().__init__(f"No recorded entry for {method} {url}")
        self.method = method
        self.url = url

    def body(self) -> str:
        return "404 Not found"


class CaptureError(RequestError):
    """The matched exchange was unusable when it was recorded."""

    status_code = 410
    origin = ORIGIN_CLIENT_BLOCKED

    def __init__(self, url: str, capture_error: Optional[Any] = None):
        self.url = url
        self.capture_error = capture_error
        if capture_error:
            self.reason = json.dumps(capture_error)
        else:
            self.reason = "Missing status"
        super().__init__(self.reason)

    def body(self) -> str:
        return (
            f"HAR response error: {self.reason}\n\n"
            "This resource might have been blocked by the client recording the HAR file. "
            "For example, by the AdBlock or Ghostery extensions."
        )


class LocalReadError(RequestError):
    """A mapped local file could not be read."""

    status_code = 404
    origin = ORIGIN_NO_ENTRY_MATCH

    def __init__(self, path: str, url: str, cause: Optional[BaseException] = None):
        super().__init__(f"Could not read {path} requested from {url}")
        self.path = path
        self.url = url
        self.cause = cause

    def body(self) -> str:
        return f"404 Not found: {self.path}"


class ContentSizeMismatch(ReplayError):
    """Decoded content is empty although the trace declares a size. Logged, never raised."""

    def __init__(self, url: str, declared_size: int):
        super().__init__(
            f"{url} has a non-zero size ({declared_size}), but there is no content in the HAR file"
        )
        self.url = url
        self.declared_size = declared_size


class ConfigCompileError(ReplayError, ValueError):
    """The configuration document cannot be compiled into rules."""


class TraceLoadError(ReplayError, ValueError):
    """The trace document has an unrecognized shape."""
