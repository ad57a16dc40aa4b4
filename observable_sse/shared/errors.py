"""
MODULE OVERVIEW:
The error taxonomy of the EventSource wrapper.

WHAT IS HAPPENING HERE:
Construction-time problems (`MissingURL`, `UnsupportedTransport`) are raised to the
caller. Everything that happens later (`DecodeFailure`, `TransportError`) is never
raised across the event boundary: it travels as the payload of an `error` event.
"""
from typing import Any


class EventSourceError(Exception):
    """Base class for every error raised or emitted by observable_sse."""


class MissingURL(EventSourceError, ValueError):
    def __init__(self, message: str = "URL for the EventSource is required!"):
        super().__init__(message)


class UnsupportedTransport(EventSourceError):
    pass


class DecodeFailure(EventSourceError):
    """A payload that was expected to be JSON and was not."""

    def __init__(self, raw: str, reason: str):
        super().__init__(f"cannot decode payload as JSON: {reason}")
        self.raw = raw
        self.reason = reason


class TransportError(EventSourceError):
    """Whatever the underlying HTTP stream reported."""

    def __init__(self, message: str, status_code: int | None = None, cause: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause
