import json
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from .errors import (
    ApiError,
    AxiomError,
    DeserializationError,
    IngestLimitExceeded,
    QueryLimitExceeded,
    RateLimitExceeded,
)
from .limits import IngestLimit, Limit, QueryLimit, RateLimit, classify
from .models import ErrorBody

HEADER_TRACE_ID = "x-axiom-trace-id"

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


class Response:
    """A completed response (after retries) plus the request it answered.

    Wraps either a ``requests.Response`` or an ``httpx.Response``; both expose
    ``status_code``, case-insensitive ``headers`` and the raw ``content``.
    """

    def __init__(self, raw, method: str, path: str):
        self.raw = raw
        self.method = method
        self.path = path
        self.limit: Limit | None = classify(raw.status_code, raw.headers, path)
        self._checked = False
        self._error: AxiomError | None = None

    @property
    def status_code(self) -> int:
        return self.raw.status_code

    @property
    def headers(self):
        return self.raw.headers

    @property
    def content(self) -> bytes:
        return self.raw.content

    def header(self, name: str) -> str | None:
        return self.raw.headers.get(name)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def check_error(self) -> "Response":
        """Raise the typed error for a non-success response, else return self.

        Safe to call more than once; the same outcome is reported every time.
        """
        if not self._checked:
            self._error = None if self.ok else self._build_error()
            self._checked = True
        if self._error is not None:
            raise self._error
        return self

    def _build_error(self) -> AxiomError:
        # Limits first, so a quota 4xx is not reported as a generic API error
        if isinstance(self.limit, RateLimit):
            return RateLimitExceeded(self.limit.scope, self.limit.limits)
        if isinstance(self.limit, QueryLimit):
            return QueryLimitExceeded(self.limit.limits)
        if isinstance(self.limit, IngestLimit):
            return IngestLimitExceeded(self.limit.limits)

        message = None
        try:
            message = ErrorBody.model_validate_json(self.content).message
        except (ValidationError, ValueError):
            # Undecodable bodies still produce an ApiError, just without a message
            pass
        return ApiError(
            status=self.status_code,
            method=self.method,
            path=self.path,
            message=message,
            trace_id=self.header(HEADER_TRACE_ID),
        )

    def json(self) -> Any:
        self.check_error()
        try:
            return json.loads(self.content)
        except ValueError as e:
            raise DeserializationError(f"Failed to deserialize response: {e}") from e

    def decode(self, target: type[T]) -> T:
        """Check for errors, then validate the JSON body into 'target'.

        'target' is anything pydantic can validate: a model class, or a
        parametrized type such as ``list[Dataset]``.
        """
        self.check_error()
        try:
            return _adapter(target).validate_json(self.content)
        except (ValidationError, ValueError) as e:
            raise DeserializationError(f"Failed to deserialize response: {e}") from e

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}] {self.method} {self.path}>"
