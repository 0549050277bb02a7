import asyncio
import contextlib
import enum
import json
import logging
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Union

import httpx
import requests

from .errors import SerializationError, TransportError
from .response import Response
from .types import SDK_VERSION, RetryConfig

USER_AGENT = f"axiom-sdk/{SDK_VERSION}"
HEADER_ORG_ID = "X-Axiom-Org-Id"

# Iterables of bytes are streamed and cannot be replayed
Body = Union[None, bytes, bytearray, str, dict, list, Iterable[bytes]]

# requests failures worth another attempt; anything else is a bug on our side
_REQUESTS_TRANSIENT = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)
_HTTPX_TRANSIENT = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)

# ---------- Common helpers ----------


def join_url(base_url: str, path: str) -> str:
    # Paths are appended, so a base URL with a path prefix keeps it
    path = path.lstrip("/")
    if not path:
        return base_url
    return f"{base_url.rstrip('/')}/{path}"


def _is_replayable(body: Body) -> bool:
    return body is None or isinstance(body, (bytes, bytearray, str, dict, list))


def _encode_body(body: Body, headers: dict[str, str]) -> Any:
    if isinstance(body, (dict, list)):
        try:
            data = json.dumps(body).encode()
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to serialize request body: {e}") from e
        if not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "application/json"
        return data
    if isinstance(body, str):
        return body.encode()
    if isinstance(body, bytearray):
        return bytes(body)
    return body


def backoff_delays(config: RetryConfig) -> Iterator[float]:
    """Yield the delays the transport sleeps between attempts, in order.

    The schedule ends once the next delay would push the total past
    ``config.max_elapsed``.
    """
    slept, delay = 0.0, config.initial_interval
    while slept + delay <= config.max_elapsed:
        yield delay
        slept += delay
        delay *= config.multiplier


@contextlib.contextmanager
def instrument(logger: logging.Logger, name: str, **fields):
    """Debug-level span around one public operation."""
    desc = " ".join(f"{k}={v}" for k, v in fields.items())
    started = time.monotonic()
    logger.debug(f"{name} start {desc}")
    try:
        yield
    except BaseException as e:
        logger.debug(
            f"{name} failed {desc} error={type(e).__name__} "
            f"elapsed={time.monotonic() - started:.3f}s"
        )
        raise
    logger.debug(f"{name} done {desc} elapsed={time.monotonic() - started:.3f}s")


class Outcome(enum.Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class Attempt:
    outcome: Outcome
    response: Any = None
    error: BaseException | None = None

    def describe(self) -> str:
        if self.response is not None:
            return f"status={self.response.status_code}"
        return f"error={self.error!r}"


def _from_status(raw) -> Attempt:
    status = raw.status_code
    if status >= 500:  # noqa: PLR2004, http status code can be constant
        return Attempt(Outcome.TRANSIENT, response=raw)
    if status >= 400:  # noqa: PLR2004
        # Client errors are final; the envelope turns them into typed errors
        return Attempt(Outcome.PERMANENT, response=raw)
    return Attempt(Outcome.SUCCESS, response=raw)


@dataclass
class RetryState:
    """Explicit state of one logical request's attempt loop."""

    config: RetryConfig
    attempts: int = 0
    slept: float = 0.0
    last: Attempt | None = None

    def record(self, attempt: Attempt) -> None:
        self.attempts += 1
        self.last = attempt

    def next_delay(self) -> float | None:
        delay = self.config.initial_interval * (self.config.multiplier ** (self.attempts - 1))
        if self.slept + delay > self.config.max_elapsed:
            return None
        return delay


# ---------- Base transport (shared logic; I/O handled by subclasses) ----------


class _BaseTransport:
    def __init__(
        self,
        base_url: str,
        token: str,
        org_id: str | None = None,
        retry_config: RetryConfig | None = None,
        log_level: int | None = None,
    ):
        """Initialize a transport for one target URL.

        Args:
            base_url (str): URL every request path is joined onto
            token (str): bearer token sent with every request
            org_id (str | None): organization id header, if any
            retry_config (RetryConfig | None): backoff and timeout settings
            log_level (int | None): level for the "axiom_sdk" logger
        """
        self.base_url = base_url
        self.retry_config = retry_config or RetryConfig()
        self._default_headers = {
            "Authorization": f"Bearer {token}",
            "User-Agent": USER_AGENT,
        }
        if org_id:
            self._default_headers[HEADER_ORG_ID] = org_id
        self._logger = logging.getLogger("axiom_sdk")
        if log_level is not None:
            self._logger.setLevel(log_level)

    def url_for(self, path: str) -> str:
        return join_url(self.base_url, path)

    def _prepare(self, body: Body, headers: dict[str, str] | None) -> tuple[Any, dict[str, str]]:
        merged = {**self._default_headers, **(headers or {})}
        return _encode_body(body, merged), merged

    def _next_delay(self, state: RetryState, method: str, path: str, replayable: bool):
        """Return how long to wait before the next attempt, or None to stop."""
        if state.last.outcome is not Outcome.TRANSIENT or not replayable:
            return None
        delay = state.next_delay()
        if delay is None:
            self._logger.warning(
                f"giving up method={method} path={path} attempts={state.attempts} "
                f"{state.last.describe()}"
            )
            return None
        self._logger.warning(
            f"transient failure method={method} path={path} attempt={state.attempts} "
            f"{state.last.describe()}; retrying in {delay:.2f}s"
        )
        return delay

    def _finish(self, state: RetryState, method: str, path: str) -> Response:
        last = state.last
        if last.response is not None:
            return Response(last.response, method, path)
        raise TransportError(
            f"{method} {path} failed after {state.attempts} attempt(s): {last.error}",
            method=method,
            path=path,
            attempts=state.attempts,
            last_error=last.error,
        ) from last.error


# ---------- Sync transport (requests) ----------


class Transport(_BaseTransport):
    def __init__(self, base_url: str, token: str, org_id: str | None = None, **kwargs):
        """Blocking transport backed by one requests.Session.

        Other keywords for kwargs:
        - retry_config: RetryConfig object
        - log_level: int
        - session: requests.Session to use instead of creating one
        - sleep: callable used between attempts (default time.sleep)
        """
        super().__init__(
            base_url,
            token,
            org_id,
            retry_config=kwargs.get("retry_config"),
            log_level=kwargs.get("log_level"),
        )
        session = kwargs.get("session")
        self._own_session = session is None
        self._session = session if session is not None else requests.Session()
        self._sleep = kwargs.get("sleep", time.sleep)

    def close(self):
        if self._own_session:
            with contextlib.suppress(Exception):
                self._session.close()

    def execute(
        self,
        method: str,
        path: str,
        body: Body = None,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> Response:
        url = self.url_for(path)
        data, merged = self._prepare(body, headers)
        replayable = _is_replayable(body)
        state = RetryState(self.retry_config)
        with instrument(self._logger, "request", method=method, path=path):
            while True:
                state.record(self._attempt(method, url, data, merged, params))
                delay = self._next_delay(state, method, path, replayable)
                if delay is None:
                    break
                self._sleep(delay)
                state.slept += delay
            return self._finish(state, method, path)

    def _attempt(self, method, url, data, headers, params) -> Attempt:
        try:
            raw = self._session.request(
                method,
                url,
                data=data,
                headers=headers,
                params=params,
                timeout=self.retry_config.attempt_timeout,
            )
        except _REQUESTS_TRANSIENT as e:
            return Attempt(Outcome.TRANSIENT, error=e)
        except Exception as e:
            # Invalid URLs, unsendable bodies and the like fail the request for good
            return Attempt(Outcome.PERMANENT, error=e)
        return _from_status(raw)


# ---------- Async transport (httpx) ----------


class AsyncTransport(_BaseTransport):
    def __init__(self, base_url: str, token: str, org_id: str | None = None, **kwargs):
        """Cooperative transport backed by one httpx.AsyncClient.

        Other keywords for kwargs:
        - retry_config: RetryConfig object
        - log_level: int
        - client: httpx.AsyncClient to use instead of creating one
        - sleep: coroutine function used between attempts (default asyncio.sleep)
        """
        super().__init__(
            base_url,
            token,
            org_id,
            retry_config=kwargs.get("retry_config"),
            log_level=kwargs.get("log_level"),
        )
        client = kwargs.get("client")
        self._own_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()
        self._sleep = kwargs.get("sleep", asyncio.sleep)

    async def aclose(self):
        if self._own_client:
            with contextlib.suppress(Exception):
                await self._client.aclose()

    async def execute(
        self,
        method: str,
        path: str,
        body: Body = None,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> Response:
        url = self.url_for(path)
        data, merged = self._prepare(body, headers)
        replayable = _is_replayable(body)
        state = RetryState(self.retry_config)
        with instrument(self._logger, "request", method=method, path=path):
            while True:
                state.record(await self._attempt(method, url, data, merged, params))
                delay = self._next_delay(state, method, path, replayable)
                if delay is None:
                    break
                # Cancelling the caller abandons this sleep and the remaining attempts
                await self._sleep(delay)
                state.slept += delay
            return self._finish(state, method, path)

    async def _attempt(self, method, url, data, headers, params) -> Attempt:
        try:
            raw = await self._client.request(
                method,
                url,
                content=data,
                headers=headers,
                params=params,
                timeout=self.retry_config.attempt_timeout,
            )
        except _HTTPX_TRANSIENT as e:
            return Attempt(Outcome.TRANSIENT, error=e)
        except Exception as e:
            return Attempt(Outcome.PERMANENT, error=e)
        return _from_status(raw)
