"""Rate-limit header parsing and response classification.

Classification keys off the status code, not the request path, so it keeps
working whatever endpoint family the request went to:

- 429 Too Many Requests -> ``RateLimit`` (needs the scope header too)
- 430 (service specific) -> ``QueryLimit`` if the query headers are present,
  otherwise ``IngestLimit`` if the ingest headers are present
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

HEADER_QUERY_LIMIT = "X-QueryLimit-Limit"
HEADER_QUERY_REMAINING = "X-QueryLimit-Remaining"
HEADER_QUERY_RESET = "X-QueryLimit-Reset"

HEADER_INGEST_LIMIT = "X-IngestLimit-Limit"
HEADER_INGEST_REMAINING = "X-IngestLimit-Remaining"
HEADER_INGEST_RESET = "X-IngestLimit-Reset"

HEADER_RATE_SCOPE = "X-RateLimit-Scope"
HEADER_RATE_LIMIT = "X-RateLimit-Limit"
HEADER_RATE_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_RESET = "X-RateLimit-Reset"

STATUS_TOO_MANY_REQUESTS = 429
STATUS_LIMIT_EXCEEDED = 430


@dataclass(frozen=True)
class Limits:
    limit: int
    remaining: int
    reset: datetime

    def is_exceeded(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return self.remaining == 0 and self.reset.timestamp() > now

    def __str__(self) -> str:
        return f"{self.remaining}/{self.limit} remaining until {self.reset.isoformat()}"


@dataclass(frozen=True)
class RateLimit:
    scope: str
    limits: Limits


@dataclass(frozen=True)
class QueryLimit:
    limits: Limits


@dataclass(frozen=True)
class IngestLimit:
    limits: Limits


Limit = Union[RateLimit, QueryLimit, IngestLimit]


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def _parse_uint(value: str | None) -> int | None:
    # int() would also take "+5", "1_000" and padded values
    if value is None or not (value.isascii() and value.isdigit()):
        return None
    return int(value)


def parse_limits(
    headers: Mapping[str, str], header_limit: str, header_remaining: str, header_reset: str
) -> Limits | None:
    """Parse one header triple. Any missing or malformed member voids the whole triple."""
    h = _lower_keys(headers)
    limit = _parse_uint(h.get(header_limit.lower()))
    remaining = _parse_uint(h.get(header_remaining.lower()))
    reset = _parse_uint(h.get(header_reset.lower()))
    if limit is None or remaining is None or reset is None:
        return None
    try:
        reset_at = datetime.fromtimestamp(reset, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return Limits(limit=limit, remaining=remaining, reset=reset_at)


def classify(status_code: int, headers: Mapping[str, str], request_path: str = "") -> Limit | None:
    """Return the limit a response reports as exceeded, or None.

    ``request_path`` is not used for the decision; it is accepted so callers
    can pass the full request context through one signature.
    """
    if status_code == STATUS_TOO_MANY_REQUESTS:
        scope = _lower_keys(headers).get(HEADER_RATE_SCOPE.lower())
        limits = parse_limits(headers, HEADER_RATE_LIMIT, HEADER_RATE_REMAINING, HEADER_RATE_RESET)
        if scope is None or limits is None:
            return None
        return RateLimit(scope=scope, limits=limits)

    if status_code == STATUS_LIMIT_EXCEEDED:
        limits = parse_limits(headers, HEADER_QUERY_LIMIT, HEADER_QUERY_REMAINING, HEADER_QUERY_RESET)
        if limits is not None:
            return QueryLimit(limits)
        limits = parse_limits(
            headers, HEADER_INGEST_LIMIT, HEADER_INGEST_REMAINING, HEADER_INGEST_RESET
        )
        if limits is not None:
            return IngestLimit(limits)

    return None
