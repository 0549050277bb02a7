import json
import queue
import time
from unittest.mock import MagicMock

import httpx
import pytest
import requests
from requests.structures import CaseInsensitiveDict

from axiom_sdk import (
    AsIs,
    ApiError,
    AsyncClient,
    Client,
    ClientConfig,
    Edge,
    IngestLimitExceeded,
    IngestStreamError,
    Legacy,
    QueryLimitExceeded,
    QueryOptions,
    SerializationError,
    decode_ndjson_gzip,
)
from axiom_sdk.types import DEFAULT_EDGE_URL

LIMIT_HEADERS = {"Limit": "10", "Remaining": "0", "Reset": "1700000000"}


def _raw(status, body=b"{}", headers=None):
    r = requests.Response()
    r.status_code = status
    r._content = body if isinstance(body, bytes) else json.dumps(body).encode()
    r.headers = CaseInsensitiveDict(headers or {})
    return r


def _ingest_echo(method, url, **kwargs):
    events = decode_ndjson_gzip(kwargs["data"])
    return _raw(200, {"ingested": len(events), "failed": 0, "processedBytes": len(kwargs["data"])})


def _client(config=None, ingest_handler=_ingest_echo):
    api, ingest = MagicMock(), MagicMock()
    ingest.request.side_effect = ingest_handler
    c = Client(config or ClientConfig(token="xaat-abc"), session=api, ingest_session=ingest, sleep=lambda _: None)
    return c, api, ingest


def test_introspection():
    c, _, _ = _client()
    assert c.api_url == "https://api.axiom.co"
    assert c.ingest_url == DEFAULT_EDGE_URL
    assert c.path_style == Edge(DEFAULT_EDGE_URL)
    assert c.uses_edge

    legacy, _, _ = _client(ClientConfig(token="xaat-abc", url="https://axiom.example.com"))
    assert isinstance(legacy.path_style, Legacy)
    assert not legacy.uses_edge

    as_is, _, _ = _client(ClientConfig(token="xaat-abc", ingest_url="https://edge.example.com/in"))
    assert isinstance(as_is.path_style, AsIs)
    assert as_is.uses_edge


def test_from_env(monkeypatch):
    monkeypatch.setenv("AXIOM_TOKEN", "xaat-env")
    monkeypatch.setenv("AXIOM_URL", "https://axiom.example.com")
    monkeypatch.delenv("AXIOM_ORG_ID", raising=False)
    monkeypatch.delenv("AXIOM_INGEST_URL", raising=False)
    monkeypatch.delenv("AXIOM_REGION", raising=False)
    with Client.from_env(session=MagicMock(), ingest_session=MagicMock()) as c:
        assert c.config.token == "xaat-env"
        assert c.path_style == Legacy("https://axiom.example.com")


def test_ingest_sends_gzip_ndjson():
    c, _, ingest = _client()
    status = c.ingest("logs", [{"a": 1}, {"a": 2}])
    assert status.ingested == 2  # noqa: PLR2004
    args, kwargs = ingest.request.call_args
    assert args == ("POST", f"{DEFAULT_EDGE_URL}/v1/ingest/logs")
    assert kwargs["headers"]["Content-Type"] == "application/x-ndjson"
    assert kwargs["headers"]["Content-Encoding"] == "gzip"
    assert decode_ndjson_gzip(kwargs["data"]) == [{"a": 1}, {"a": 2}]


def test_ingest_bytes_content_headers_override_caller():
    c, _, ingest = _client(ingest_handler=lambda *a, **kw: _raw(200, {"ingested": 1}))
    c.ingest_bytes(
        "logs",
        b"a,b\n1,2",
        content_type="text/csv",
        headers={"content-type": "application/json", "X-Custom": "yes"},
    )
    _, kwargs = ingest.request.call_args
    headers = kwargs["headers"]
    assert headers["Content-Type"] == "text/csv"
    assert "content-type" not in headers
    assert headers["Content-Encoding"] == ""
    assert headers["X-Custom"] == "yes"


def test_ingest_stream_chunks_and_merges():
    c, _, ingest = _client()
    status = c.ingest_stream("logs", ({"i": i} for i in range(2321)))
    assert ingest.request.call_count == 3  # noqa: PLR2004
    assert status.ingested == 2321  # noqa: PLR2004
    sizes = [len(decode_ndjson_gzip(call.kwargs["data"])) for call in ingest.request.call_args_list]
    assert sizes == [1000, 1000, 321]


def test_ingest_stream_source_error():
    def broken():
        yield {"i": 1}
        raise RuntimeError("source died")

    c, _, _ = _client()
    with pytest.raises(IngestStreamError) as ei:
        c.ingest_stream("logs", broken())
    assert isinstance(ei.value.__cause__, RuntimeError)


def test_ingest_stream_ingest_error_propagates():
    headers = {f"X-IngestLimit-{k}": v for k, v in LIMIT_HEADERS.items()}
    c, _, _ = _client(ingest_handler=lambda *a, **kw: _raw(430, b"", headers))
    with pytest.raises(IngestLimitExceeded):
        c.ingest_stream("logs", [{"i": 1}])


def test_ingest_bytes_text_payload():
    c, _, ingest = _client(ingest_handler=lambda *a, **kw: _raw(200, {"ingested": 1}))
    c.ingest_bytes("logs", "a,b\n1,2", content_type="text/csv")
    _, kwargs = ingest.request.call_args
    assert kwargs["data"] == b"a,b\n1,2"
    with pytest.raises(SerializationError):
        c.ingest_bytes("logs", 42)


def test_ingest_stream_flushes_on_interval():
    def slow():
        yield {"i": 1}
        yield {"i": 2}
        time.sleep(0.5)
        yield {"i": 3}

    c, _, ingest = _client()
    status = c.ingest_stream("logs", slow(), max_size=100, interval=0.1)
    assert status.ingested == 3  # noqa: PLR2004
    sizes = [len(decode_ndjson_gzip(call.kwargs["data"])) for call in ingest.request.call_args_list]
    assert sizes == [2, 1]


def test_ingest_stream_failure_stops_reading_source():
    events = queue.Queue()
    for i in range(3):
        events.put({"i": i})

    def source():
        while True:
            yield events.get()

    c, _, _ = _client(ingest_handler=lambda *a, **kw: _raw(400, {"message": "bad"}))
    with pytest.raises(ApiError):
        c.ingest_stream("logs", source(), max_size=3, interval=60)

    # Events put after the call returned stay with the caller
    events.put({"mine": True})
    time.sleep(0.3)
    assert events.qsize() == 1


def test_query_merges_header_ids():
    body = {"status": {"elapsedTime": 3}, "matches": [], "datasetNames": ["logs"]}
    headers = {"X-Axiom-History-Query-Id": "saved-1", "x-axiom-trace-id": "trace-1"}
    c, _, ingest = _client(ingest_handler=lambda *a, **kw: _raw(200, body, headers))
    result = c.query("['logs'] | limit 1", QueryOptions(save=True))
    assert result.saved_query_id == "saved-1"
    assert result.trace_id == "trace-1"
    assert result.dataset_names == ["logs"]
    args, kwargs = ingest.request.call_args
    assert args == ("POST", f"{DEFAULT_EDGE_URL}/v1/query/_apl")
    assert kwargs["params"] == {"nocache": "false", "saveAsKind": "true", "format": "legacy"}
    assert json.loads(kwargs["data"])["apl"] == "['logs'] | limit 1"


def test_query_limit():
    headers = {f"X-QueryLimit-{k}": v for k, v in LIMIT_HEADERS.items()}
    c, _, _ = _client(ingest_handler=lambda *a, **kw: _raw(430, b"", headers))
    with pytest.raises(QueryLimitExceeded):
        c.query("['logs']")


def test_legacy_query_path():
    c, _, ingest = _client(
        ClientConfig(token="xaat-abc", url="https://axiom.example.com"),
        ingest_handler=lambda *a, **kw: _raw(200, {}),
    )
    c.query("['logs']")
    args, _ = ingest.request.call_args
    assert args == ("POST", "https://axiom.example.com/v1/datasets/_apl")


def test_datasets_use_api_url():
    c, api, _ = _client()
    api.request.side_effect = [
        _raw(200, [{"name": "logs", "description": "", "who": "me", "created": "2024-01-01T00:00:00Z"}]),
        _raw(200, {"name": "new", "description": "d"}),
        _raw(204, b""),
    ]
    datasets = c.datasets.list()
    assert [d.name for d in datasets] == ["logs"]
    assert datasets[0].created_by == "me"
    created = c.datasets.create("new", "d")
    assert created.description == "d"
    c.datasets.delete("new")
    urls = [call.args[1] for call in api.request.call_args_list]
    assert urls == [
        "https://api.axiom.co/v1/datasets",
        "https://api.axiom.co/v1/datasets",
        "https://api.axiom.co/v1/datasets/new",
    ]


# ---------- async ----------


def _async_client(handler, config=None):
    mock = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def _sleep(_):
        return None

    c = AsyncClient(config or ClientConfig(token="xaat-abc"), client=mock, ingest_client=mock, sleep=_sleep)
    return c, mock


@pytest.mark.asyncio
async def test_async_ingest_stream():
    seen = []

    def _handle(request):
        events = decode_ndjson_gzip(request.content)
        seen.append((request.url.path, len(events)))
        return httpx.Response(200, json={"ingested": len(events)})

    c, mock = _async_client(_handle)

    async def source():
        for i in range(2321):
            yield {"i": i}

    async with c:
        status = await c.ingest_stream("logs", source())
    await mock.aclose()
    assert status.ingested == 2321  # noqa: PLR2004
    assert seen == [("/v1/ingest/logs", 1000), ("/v1/ingest/logs", 1000), ("/v1/ingest/logs", 321)]


@pytest.mark.asyncio
async def test_async_ingest_stream_source_error():
    c, mock = _async_client(lambda request: httpx.Response(200, json={"ingested": 1}))

    async def broken():
        yield {"i": 1}
        raise RuntimeError("source died")

    with pytest.raises(IngestStreamError):
        await c.ingest_stream("logs", broken())
    await mock.aclose()


@pytest.mark.asyncio
async def test_async_query_and_datasets():
    def _handle(request):
        if request.url.path == "/v1/query/_apl":
            return httpx.Response(200, json={"matches": None}, headers={"x-axiom-trace-id": "t"})
        if request.url.path == "/v1/datasets/logs":
            return httpx.Response(200, json={"name": "logs"})
        return httpx.Response(404, json={"message": "not found"})

    c, mock = _async_client(_handle)
    result = await c.query("['logs']")
    assert result.trace_id == "t"
    assert result.matches == []
    ds = await c.datasets.get("logs")
    assert ds.name == "logs"
    await mock.aclose()
