"""Batch an event source into ingest-sized chunks and encode them.

A chunk closes when it holds ``max_size`` events or when ``interval``
seconds have passed since its first event, whichever comes first. The
interval bound keeps latency low when events trickle in slowly. Exceptions
raised by the source propagate out of the chunk iterator unchanged.
"""

import asyncio
import dataclasses
import gzip
import json
import queue
import threading
import time
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from datetime import date, datetime
from typing import Any, TypeVar, Union

from pydantic import BaseModel

from .errors import SerializationError

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_FLUSH_INTERVAL = 1.0
# zlib's default level
GZIP_LEVEL = 6

_END = object()


class _Raised:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


def chunks_timeout(
    events: Iterable[T],
    max_size: int = DEFAULT_CHUNK_SIZE,
    interval: float = DEFAULT_FLUSH_INTERVAL,
) -> Iterator[list[T]]:
    """Yield lists of events from a (possibly blocking) iterable.

    A daemon thread pulls from 'events' so that a source that blocks for a
    long time cannot hold back a chunk whose interval has already expired.
    The thread reads one event per request from the consumer, so at most one
    read is outstanding; closing the returned generator stops the thread
    before its next read.
    """
    if max_size < 1:
        raise ValueError("max_size must be at least 1")
    return _chunks(events, max_size, interval)


def _chunks(events: Iterable[T], max_size: int, interval: float) -> Iterator[list[T]]:
    iterator = iter(events)
    wanted: queue.Queue = queue.Queue()
    results: queue.Queue = queue.Queue()
    stop = threading.Event()

    def pump():
        while True:
            wanted.get()
            if stop.is_set():
                return
            try:
                item = next(iterator)
            except StopIteration:
                results.put(_END)
                return
            except Exception as e:
                results.put(_Raised(e))
                return
            results.put(item)

    worker = threading.Thread(target=pump, name="axiom-sdk-chunker", daemon=True)
    worker.start()

    chunk: list[T] = []
    deadline: float | None = None
    pending = False
    try:
        while True:
            if not pending:
                wanted.put(True)
                pending = True
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                item = results.get(timeout=timeout)
            except queue.Empty:
                # Interval expired; the outstanding read feeds the next chunk
                yield chunk
                chunk, deadline = [], None
                continue
            pending = False
            if item is _END:
                break
            if isinstance(item, _Raised):
                raise item.error
            if not chunk:
                deadline = time.monotonic() + interval
            chunk.append(item)
            if len(chunk) >= max_size or time.monotonic() >= deadline:
                yield chunk
                chunk, deadline = [], None
        if chunk:
            yield chunk
    finally:
        stop.set()
        wanted.put(None)
        worker.join(timeout=0.1)


async def _iterate(events: Iterable[T]) -> AsyncIterator[T]:
    for event in events:
        yield event


async def _pull(iterator: AsyncIterator[T]) -> tuple[bool, Any]:
    try:
        return False, await iterator.__anext__()
    except StopAsyncIteration:
        return True, None


def achunks_timeout(
    events: Union[AsyncIterable[T], Iterable[T]],
    max_size: int = DEFAULT_CHUNK_SIZE,
    interval: float = DEFAULT_FLUSH_INTERVAL,
) -> AsyncIterator[list[T]]:
    """Async counterpart of chunks_timeout.

    Plain iterables are accepted too, but they are pulled on the event loop,
    so they must not block.
    """
    if max_size < 1:
        raise ValueError("max_size must be at least 1")
    return _achunks(events, max_size, interval)


async def _achunks(
    events: Union[AsyncIterable[T], Iterable[T]], max_size: int, interval: float
) -> AsyncIterator[list[T]]:
    if isinstance(events, AsyncIterable):
        iterator = events.__aiter__()
    else:
        iterator = _iterate(events)
    loop = asyncio.get_running_loop()
    pending: asyncio.Task | None = None
    chunk: list[T] = []
    deadline: float | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(_pull(iterator))
            timeout = None if deadline is None else max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait({pending}, timeout=timeout)
            if not done:
                # Interval expired; keep the pull running for the next chunk
                yield chunk
                chunk, deadline = [], None
                continue
            task, pending = pending, None
            exhausted, event = task.result()
            if exhausted:
                break
            if not chunk:
                deadline = loop.time() + interval
            chunk.append(event)
            if len(chunk) >= max_size or loop.time() >= deadline:
                yield chunk
                chunk, deadline = [], None
        if chunk:
            yield chunk
    finally:
        if pending is not None and not pending.done():
            pending.cancel()


# ---------- encoding ----------


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_ndjson(events: Iterable[Any]) -> bytes:
    try:
        lines = [json.dumps(event, default=_json_default) for event in events]
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to serialize event: {e}") from e
    return "\n".join(lines).encode()


def encode_ndjson_gzip(events: Iterable[Any]) -> bytes:
    return gzip.compress(encode_ndjson(events), compresslevel=GZIP_LEVEL)


def decode_ndjson_gzip(payload: bytes) -> list[Any]:
    text = gzip.decompress(payload).decode()
    return [json.loads(line) for line in text.splitlines() if line.strip()]
