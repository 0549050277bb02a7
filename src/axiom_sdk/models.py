"""Pydantic models for request and response payloads."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _null_as_empty(value: Any) -> Any:
    return [] if value is None else value


# ---------- ingest ----------


class IngestFailure(_WireModel):
    timestamp: datetime
    error: str


class IngestStatus(_WireModel):
    """Result of an ingest request. Statuses from several requests can be merged."""

    ingested: int = 0
    failed: int = 0
    failures: list[IngestFailure] = Field(default_factory=list)
    processed_bytes: int = 0
    # Deprecated by the service; kept so responses round-trip.
    blocks_created: int = 0
    wal_length: int = 0

    @field_validator("failures", mode="before")
    @classmethod
    def failures_null_as_empty(cls, value: Any) -> Any:
        return _null_as_empty(value)

    def merge(self, other: IngestStatus) -> IngestStatus:
        return IngestStatus(
            ingested=self.ingested + other.ingested,
            failed=self.failed + other.failed,
            failures=[*self.failures, *other.failures],
            processed_bytes=self.processed_bytes + other.processed_bytes,
            blocks_created=self.blocks_created + other.blocks_created,
            wal_length=max(self.wal_length, other.wal_length),
        )

    def __add__(self, other: IngestStatus) -> IngestStatus:
        if not isinstance(other, IngestStatus):
            return NotImplemented
        return self.merge(other)


# ---------- query ----------


class AplResultFormat(str, Enum):
    LEGACY = "legacy"


@dataclass
class QueryOptions:
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    # Pagination cursor; include_cursor also returns the matching event.
    cursor: Optional[str] = None
    include_cursor: bool = False

    no_cache: bool = False
    # Save the query on the server; its id comes back as QueryResult.saved_query_id.
    save: bool = False
    format: AplResultFormat = AplResultFormat.LEGACY

    def params(self) -> dict[str, str]:
        return {
            "nocache": "true" if self.no_cache else "false",
            "saveAsKind": "true" if self.save else "false",
            "format": self.format.value,
        }


class Query(_WireModel):
    apl: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cursor: Optional[str] = None
    include_cursor: bool = False

    @classmethod
    def from_options(cls, apl: str, opts: QueryOptions) -> Query:
        return cls(
            apl=apl,
            start_time=opts.start_time,
            end_time=opts.end_time,
            cursor=opts.cursor,
            include_cursor=opts.include_cursor,
        )

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class QueryMessage(_WireModel):
    priority: str
    count: int = 0
    code: str
    text: Optional[str] = None


class QueryStatus(_WireModel):
    elapsed_time: int = 0
    blocks_examined: int = 0
    rows_examined: int = 0
    rows_matched: int = 0
    num_groups: int = 0
    is_partial: bool = False
    continuation_token: Optional[str] = None
    is_estimate: bool = False
    cache_status: int = 0
    min_block_time: Optional[datetime] = None
    max_block_time: Optional[datetime] = None
    messages: list[QueryMessage] = Field(default_factory=list)
    max_cursor: Optional[str] = None
    min_cursor: Optional[str] = None

    @field_validator("messages", mode="before")
    @classmethod
    def messages_null_as_empty(cls, value: Any) -> Any:
        return _null_as_empty(value)


class Entry(BaseModel):
    time: datetime = Field(alias="_time")
    sys_time: datetime = Field(alias="_sysTime")
    row_id: str = Field(alias="_rowId")
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class QueryResult(_WireModel):
    request: Optional[dict[str, Any]] = None
    status: QueryStatus = Field(default_factory=QueryStatus)
    dataset_names: list[str] = Field(default_factory=list)
    matches: list[Entry] = Field(default_factory=list)
    buckets: Optional[dict[str, Any]] = None
    # Taken from response headers, not the body.
    saved_query_id: Optional[str] = None
    trace_id: Optional[str] = None

    @field_validator("dataset_names", "matches", mode="before")
    @classmethod
    def lists_null_as_empty(cls, value: Any) -> Any:
        return _null_as_empty(value)


# ---------- datasets ----------


class Dataset(BaseModel):
    name: str
    description: str = ""
    created_by: str = Field(default="", alias="who")
    created_at: Optional[datetime] = Field(default=None, alias="created")

    model_config = ConfigDict(populate_by_name=True)


class DatasetCreateRequest(_WireModel):
    name: str
    description: str = ""


class DatasetUpdateRequest(_WireModel):
    description: str


class ErrorBody(BaseModel):
    message: Optional[str] = None
