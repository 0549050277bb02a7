import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable, Iterable
from typing import Any, Union
from urllib.parse import quote

from .chunking import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FLUSH_INTERVAL,
    achunks_timeout,
    chunks_timeout,
    encode_ndjson_gzip,
)
from .endpoints import Legacy, PathStyle, resolve
from .env import load_client_config
from .errors import IngestStreamError, SerializationError
from .models import (
    Dataset,
    DatasetCreateRequest,
    DatasetUpdateRequest,
    IngestStatus,
    Query,
    QueryOptions,
    QueryResult,
)
from .response import HEADER_TRACE_ID, Response
from .transport import AsyncTransport, Transport, instrument
from .types import SDK_VERSION, ClientConfig, ContentEncoding, ContentType

HEADER_SAVED_QUERY_ID = "X-Axiom-History-Query-Id"

_TRANSPORT_KWARGS = ("retry_config", "log_level", "sleep")


def _dataset_path(name: str | None = None) -> str:
    if name is None:
        return "/v1/datasets"
    return f"/v1/datasets/{quote(name, safe='')}"


def _ingest_headers(
    content_type: Union[ContentType, str],
    content_encoding: Union[ContentEncoding, str],
    headers: dict[str, str] | None,
) -> dict[str, str]:
    if not isinstance(content_type, ContentType):
        content_type = ContentType.parse(content_type)
    if not isinstance(content_encoding, ContentEncoding):
        content_encoding = ContentEncoding.parse(content_encoding)
    # Content headers always win over caller-provided ones, whatever their case
    merged = {
        k: v
        for k, v in (headers or {}).items()
        if k.lower() not in ("content-type", "content-encoding")
    }
    merged["Content-Type"] = content_type.value
    merged["Content-Encoding"] = content_encoding.value
    return merged


def _payload_bytes(payload: Union[bytes, bytearray, memoryview, str]) -> bytes:
    if isinstance(payload, str):
        return payload.encode()
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    raise SerializationError(f"Unsupported payload type: {type(payload).__name__}")


def _with_header_ids(result: QueryResult, resp: Response) -> QueryResult:
    saved_query_id = resp.header(HEADER_SAVED_QUERY_ID)
    if saved_query_id is not None:
        result.saved_query_id = saved_query_id
    trace_id = resp.header(HEADER_TRACE_ID)
    if trace_id is not None:
        result.trace_id = trace_id
    return result


class _ClientBase:
    """Configuration and endpoint resolution shared by both clients."""

    def __init__(self, config: ClientConfig | None, kwargs: dict[str, Any]):
        self.config = config if config is not None else load_client_config()
        self._api_url, self._path_style = resolve(self.config)
        self._transport_kwargs = {k: kwargs[k] for k in _TRANSPORT_KWARGS if k in kwargs}
        self._logger = logging.getLogger("axiom_sdk")

    @property
    def version(self) -> str:
        return SDK_VERSION

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def ingest_url(self) -> str:
        """Base URL that ingest and query requests are sent to."""
        return self._path_style.base_url

    @property
    def path_style(self) -> PathStyle:
        return self._path_style

    @property
    def uses_edge(self) -> bool:
        return not isinstance(self._path_style, Legacy)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} api_url={self._api_url} "
            f"ingest_url={self.ingest_url} style={type(self._path_style).__name__}>"
        )


# ---------- Sync client ----------


class DatasetsClient:
    """Dataset management. Always talks to the API URL with dataset-scoped paths."""

    def __init__(self, transport: Transport):
        self._transport = transport

    def list(self) -> list[Dataset]:
        return self._transport.execute("GET", _dataset_path()).decode(list[Dataset])

    def get(self, name: str) -> Dataset:
        return self._transport.execute("GET", _dataset_path(name)).decode(Dataset)

    def create(self, name: str, description: str = "") -> Dataset:
        body = DatasetCreateRequest(name=name, description=description)
        resp = self._transport.execute("POST", _dataset_path(), body=body.model_dump(by_alias=True))
        return resp.decode(Dataset)

    def update(self, name: str, description: str) -> Dataset:
        body = DatasetUpdateRequest(description=description)
        resp = self._transport.execute("PUT", _dataset_path(name), body=body.model_dump(by_alias=True))
        return resp.decode(Dataset)

    def delete(self, name: str) -> None:
        self._transport.execute("DELETE", _dataset_path(name)).check_error()


class Client(_ClientBase):
    def __init__(self, config: ClientConfig | None = None, **kwargs):
        """Blocking client. Without a config, settings come from the environment.

        Other keywords for kwargs:
        - retry_config: RetryConfig object
        - log_level: int
        - sleep: callable used between retry attempts
        - session: requests.Session for API requests (datasets)
        - ingest_session: requests.Session for ingest and query requests
        """
        super().__init__(config, kwargs)
        cfg = self.config
        self._api = Transport(
            self._api_url, cfg.token, cfg.org_id, session=kwargs.get("session"), **self._transport_kwargs
        )
        self._ingest = Transport(
            self.ingest_url,
            cfg.token,
            cfg.org_id,
            session=kwargs.get("ingest_session"),
            **self._transport_kwargs,
        )
        self.datasets = DatasetsClient(self._api)

    @classmethod
    def from_env(
        cls,
        token: str | None = None,
        org_id: str | None = None,
        url: str | None = None,
        ingest_url: str | None = None,
        region: str | None = None,
        env_fallback: bool = True,
        env_path: str | None = None,
        **kwargs,
    ) -> "Client":
        """Build a client from explicit values, falling back to AXIOM_* variables."""
        config = load_client_config(
            token=token,
            org_id=org_id,
            url=url,
            ingest_url=ingest_url,
            region=region,
            env_fallback=env_fallback,
            env_path=env_path,
        )
        return cls(config, **kwargs)

    def close(self):
        self._api.close()
        self._ingest.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def ingest_bytes(
        self,
        dataset: str,
        payload: Union[bytes, str],
        content_type: Union[ContentType, str] = ContentType.JSON,
        content_encoding: Union[ContentEncoding, str] = ContentEncoding.IDENTITY,
        headers: dict[str, str] | None = None,
    ) -> IngestStatus:
        """Send an already encoded payload to a dataset. Text payloads are sent as UTF-8."""
        merged = _ingest_headers(content_type, content_encoding, headers)
        path = self._path_style.ingest_path(dataset)
        resp = self._ingest.execute("POST", path, body=_payload_bytes(payload), headers=merged)
        return resp.decode(IngestStatus)

    def ingest(self, dataset: str, events: Iterable[Any]) -> IngestStatus:
        """Ingest events as one gzip-compressed NDJSON request."""
        payload = encode_ndjson_gzip(events)
        return self.ingest_bytes(dataset, payload, ContentType.NDJSON, ContentEncoding.GZIP)

    def ingest_stream(
        self,
        dataset: str,
        events: Iterable[Any],
        max_size: int = DEFAULT_CHUNK_SIZE,
        interval: float = DEFAULT_FLUSH_INTERVAL,
    ) -> IngestStatus:
        """Ingest a (possibly endless or slow) event source chunk by chunk.

        Chunks hold at most 'max_size' events and are flushed at the latest
        'interval' seconds after their first event. Chunks are sent one at a
        time and their statuses merged. If the source raises, an
        IngestStreamError is raised with the source's exception as cause; ingest
        errors propagate as they are. Either way nothing is returned for
        chunks that were already sent.
        """
        status = IngestStatus()
        chunks = chunks_timeout(events, max_size, interval)
        with contextlib.closing(chunks), instrument(self._logger, "ingest_stream", dataset=dataset):
            while True:
                try:
                    chunk = next(chunks)
                except StopIteration:
                    break
                except Exception as e:
                    raise IngestStreamError(e) from e
                with instrument(self._logger, "ingest_chunk", dataset=dataset, events=len(chunk)):
                    status = status + self.ingest(dataset, chunk)
        return status

    def query(self, apl: str, options: QueryOptions | None = None) -> QueryResult:
        opts = options or QueryOptions()
        body = Query.from_options(apl, opts).to_body()
        resp = self._ingest.execute("POST", self._path_style.query_path(), body=body, params=opts.params())
        return _with_header_ids(resp.decode(QueryResult), resp)


# ---------- Async client ----------


class AsyncDatasetsClient:
    def __init__(self, transport: AsyncTransport):
        self._transport = transport

    async def list(self) -> list[Dataset]:
        resp = await self._transport.execute("GET", _dataset_path())
        return resp.decode(list[Dataset])

    async def get(self, name: str) -> Dataset:
        resp = await self._transport.execute("GET", _dataset_path(name))
        return resp.decode(Dataset)

    async def create(self, name: str, description: str = "") -> Dataset:
        body = DatasetCreateRequest(name=name, description=description)
        resp = await self._transport.execute("POST", _dataset_path(), body=body.model_dump(by_alias=True))
        return resp.decode(Dataset)

    async def update(self, name: str, description: str) -> Dataset:
        body = DatasetUpdateRequest(description=description)
        resp = await self._transport.execute("PUT", _dataset_path(name), body=body.model_dump(by_alias=True))
        return resp.decode(Dataset)

    async def delete(self, name: str) -> None:
        resp = await self._transport.execute("DELETE", _dataset_path(name))
        resp.check_error()


class AsyncClient(_ClientBase):
    def __init__(self, config: ClientConfig | None = None, **kwargs):
        """Cooperative client on httpx. Without a config, settings come from the environment.

        Other keywords for kwargs:
        - retry_config: RetryConfig object
        - log_level: int
        - sleep: coroutine function used between retry attempts
        - client: httpx.AsyncClient for API requests (datasets)
        - ingest_client: httpx.AsyncClient for ingest and query requests
        """
        super().__init__(config, kwargs)
        cfg = self.config
        self._api = AsyncTransport(
            self._api_url, cfg.token, cfg.org_id, client=kwargs.get("client"), **self._transport_kwargs
        )
        self._ingest = AsyncTransport(
            self.ingest_url,
            cfg.token,
            cfg.org_id,
            client=kwargs.get("ingest_client"),
            **self._transport_kwargs,
        )
        self.datasets = AsyncDatasetsClient(self._api)

    @classmethod
    def from_env(
        cls,
        token: str | None = None,
        org_id: str | None = None,
        url: str | None = None,
        ingest_url: str | None = None,
        region: str | None = None,
        env_fallback: bool = True,
        env_path: str | None = None,
        **kwargs,
    ) -> "AsyncClient":
        config = load_client_config(
            token=token,
            org_id=org_id,
            url=url,
            ingest_url=ingest_url,
            region=region,
            env_fallback=env_fallback,
            env_path=env_path,
        )
        return cls(config, **kwargs)

    async def aclose(self):
        await self._api.aclose()
        await self._ingest.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def ingest_bytes(
        self,
        dataset: str,
        payload: Union[bytes, str],
        content_type: Union[ContentType, str] = ContentType.JSON,
        content_encoding: Union[ContentEncoding, str] = ContentEncoding.IDENTITY,
        headers: dict[str, str] | None = None,
    ) -> IngestStatus:
        merged = _ingest_headers(content_type, content_encoding, headers)
        path = self._path_style.ingest_path(dataset)
        resp = await self._ingest.execute("POST", path, body=_payload_bytes(payload), headers=merged)
        return resp.decode(IngestStatus)

    async def ingest(self, dataset: str, events: Iterable[Any]) -> IngestStatus:
        # Compression is CPU bound; keep it off the event loop
        payload = await asyncio.to_thread(encode_ndjson_gzip, list(events))
        return await self.ingest_bytes(dataset, payload, ContentType.NDJSON, ContentEncoding.GZIP)

    async def ingest_stream(
        self,
        dataset: str,
        events: Union[AsyncIterable[Any], Iterable[Any]],
        max_size: int = DEFAULT_CHUNK_SIZE,
        interval: float = DEFAULT_FLUSH_INTERVAL,
    ) -> IngestStatus:
        """Async counterpart of Client.ingest_stream; accepts async or plain iterables."""
        status = IngestStatus()
        chunks = achunks_timeout(events, max_size, interval)
        async with contextlib.aclosing(chunks):
            with instrument(self._logger, "ingest_stream", dataset=dataset):
                while True:
                    try:
                        chunk = await chunks.__anext__()
                    except StopAsyncIteration:
                        break
                    except Exception as e:
                        raise IngestStreamError(e) from e
                    with instrument(self._logger, "ingest_chunk", dataset=dataset, events=len(chunk)):
                        status = status + await self.ingest(dataset, chunk)
        return status

    async def query(self, apl: str, options: QueryOptions | None = None) -> QueryResult:
        opts = options or QueryOptions()
        body = Query.from_options(apl, opts).to_body()
        resp = await self._ingest.execute(
            "POST", self._path_style.query_path(), body=body, params=opts.params()
        )
        return _with_header_ids(resp.decode(QueryResult), resp)
