from datetime import datetime, timezone

from axiom_sdk import IngestLimit, QueryLimit, RateLimit, classify
from axiom_sdk.limits import Limits, parse_limits

RESET = 1700000000


def _rate_headers(**overrides):
    h = {
        "X-RateLimit-Scope": "user",
        "X-RateLimit-Limit": "100",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(RESET),
    }
    h.update(overrides)
    return h


def test_429_with_full_headers_is_rate_limit():
    limit = classify(429, _rate_headers(), "/v1/datasets")
    assert isinstance(limit, RateLimit)
    assert limit.scope == "user"
    assert limit.limits.limit == 100  # noqa: PLR2004
    assert limit.limits.remaining == 0
    assert limit.limits.reset == datetime.fromtimestamp(RESET, tz=timezone.utc)


def test_header_lookup_is_case_insensitive():
    headers = {k.lower(): v for k, v in _rate_headers().items()}
    assert isinstance(classify(429, headers), RateLimit)


def test_malformed_or_missing_headers_yield_none():
    assert classify(429, _rate_headers(**{"X-RateLimit-Limit": "lots"})) is None
    assert classify(429, _rate_headers(**{"X-RateLimit-Remaining": "-1"})) is None
    missing_scope = _rate_headers()
    del missing_scope["X-RateLimit-Scope"]
    assert classify(429, missing_scope) is None
    assert classify(429, {}) is None


def test_430_query_and_ingest():
    query = {"X-QueryLimit-Limit": "10", "X-QueryLimit-Remaining": "0", "X-QueryLimit-Reset": str(RESET)}
    ingest = {"X-IngestLimit-Limit": "10", "X-IngestLimit-Remaining": "0", "X-IngestLimit-Reset": str(RESET)}
    assert isinstance(classify(430, query, "/v1/datasets/_apl"), QueryLimit)
    assert isinstance(classify(430, ingest, "/v1/ingest/logs"), IngestLimit)
    assert classify(430, {}) is None


def test_non_limit_statuses_are_not_classified():
    assert classify(200, _rate_headers()) is None
    assert classify(500, _rate_headers()) is None


def test_parse_limits_all_or_nothing():
    partial = {"X-QueryLimit-Limit": "10", "X-QueryLimit-Remaining": "3"}
    assert parse_limits(partial, "X-QueryLimit-Limit", "X-QueryLimit-Remaining", "X-QueryLimit-Reset") is None


def test_limits_is_exceeded():
    reset = datetime.fromtimestamp(RESET, tz=timezone.utc)
    assert Limits(10, 0, reset).is_exceeded(now=RESET - 1)
    assert not Limits(10, 0, reset).is_exceeded(now=RESET + 1)
    assert not Limits(10, 1, reset).is_exceeded(now=RESET - 1)


def test_non_digit_values_are_malformed():
    for bad in ("1_000", "+5", " 5", "5 ", "٥", ""):
        assert classify(429, _rate_headers(**{"X-RateLimit-Limit": bad})) is None, bad
