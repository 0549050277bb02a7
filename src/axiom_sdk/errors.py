"""Exceptions raised by the SDK.

Everything derives from ``AxiomError`` so callers can catch the whole family
at once, or match on the specific class:

- ``ConfigError`` subclasses: raised while building a client, never later.
- ``TransportError``: the network kept failing until the retry budget ran out.
- ``LimitExceeded`` subclasses: a rate, query or ingest quota was hit. These
  are never retried by the SDK; ``limits.reset`` says when to try again.
- ``ApiError``: any other non-success response, with request context.
- ``SerializationError`` / ``DeserializationError``: JSON encoding problems.
- ``IngestStreamError``: the event source of a streaming ingest raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .limits import Limits


class AxiomError(Exception):
    """Base class for all SDK errors."""


# ---------- configuration ----------


class ConfigError(AxiomError):
    pass


class MissingToken(ConfigError):
    def __init__(self):
        super().__init__("Missing token")


class MissingOrgId(ConfigError):
    def __init__(self):
        super().__init__("Missing Org ID for Personal Access Token")


class InvalidToken(ConfigError):
    def __init__(self):
        super().__init__("Invalid token (make sure there are no invalid characters)")


class InvalidOrgId(ConfigError):
    def __init__(self):
        super().__init__("Invalid Org ID (make sure there are no invalid characters)")


class InvalidUrl(ConfigError):
    def __init__(self, url: str, reason: str = "missing scheme or host"):
        super().__init__(f"Invalid URL {url!r}: {reason}")
        self.url = url


# ---------- transport ----------


class TransportError(AxiomError):
    """Raised when no response could be obtained for a request."""

    def __init__(self, message=None, *, method=None, path=None, attempts=None, last_error=None):
        super().__init__(message or "HTTP request failed")
        self.method = method
        self.path = path
        self.attempts = attempts
        self.last_error = last_error


# ---------- limits ----------


class LimitExceeded(AxiomError):
    def __init__(self, message: str, limits: Limits):
        super().__init__(message)
        self.limits = limits


class RateLimitExceeded(LimitExceeded):
    def __init__(self, scope: str, limits: Limits):
        super().__init__(f"Rate limit exceeded for the {scope} scope: {limits}", limits)
        self.scope = scope


class QueryLimitExceeded(LimitExceeded):
    def __init__(self, limits: Limits):
        super().__init__(f"Query limit exceeded: {limits}", limits)


class IngestLimitExceeded(LimitExceeded):
    def __init__(self, limits: Limits):
        super().__init__(f"Ingest limit exceeded: {limits}", limits)


# ---------- API ----------


class ApiError(AxiomError):
    """A non-success response from the API.

    ``message`` is whatever the service put in its error body, or ``None``
    when the body was missing or could not be decoded.
    """

    def __init__(
        self,
        status: int,
        method: str,
        path: str,
        message: str | None = None,
        trace_id: str | None = None,
    ):
        self.status = status
        self.method = method
        self.path = path
        self.message = message
        self.trace_id = trace_id
        super().__init__(self._describe())

    def _describe(self) -> str:
        text = f"Received {self.status} on {self.method} {self.path}"
        if self.message is not None:
            text += f": {self.message}"
        if self.trace_id is not None:
            text += f" (trace id: {self.trace_id})"
        return text


# ---------- payloads ----------


class SerializationError(AxiomError):
    pass


class DeserializationError(AxiomError):
    pass


class IngestStreamError(AxiomError):
    def __init__(self, cause: BaseException):
        super().__init__(f"Error in ingest stream: {cause}")
        self.cause = cause


class InvalidContentType(AxiomError):
    def __init__(self, value: str):
        super().__init__(f"Invalid content type: {value}")
        self.value = value


class InvalidContentEncoding(AxiomError):
    def __init__(self, value: str):
        super().__init__(f"Invalid content encoding: {value}")
        self.value = value
