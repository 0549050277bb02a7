from .chunking import achunks_timeout, chunks_timeout, decode_ndjson_gzip, encode_ndjson_gzip
from .client import AsyncClient, AsyncDatasetsClient, Client, DatasetsClient
from .endpoints import AsIs, Edge, Legacy, PathStyle, resolve
from .env import load_client_config
from .errors import (
    ApiError,
    AxiomError,
    ConfigError,
    DeserializationError,
    IngestLimitExceeded,
    IngestStreamError,
    InvalidContentEncoding,
    InvalidContentType,
    InvalidOrgId,
    InvalidToken,
    InvalidUrl,
    LimitExceeded,
    MissingOrgId,
    MissingToken,
    QueryLimitExceeded,
    RateLimitExceeded,
    SerializationError,
    TransportError,
)
from .limits import IngestLimit, Limit, Limits, QueryLimit, RateLimit, classify
from .models import Dataset, IngestFailure, IngestStatus, QueryOptions, QueryResult
from .response import Response
from .types import SDK_VERSION, ClientConfig, ContentEncoding, ContentType, RetryConfig

__version__ = SDK_VERSION

__all__ = [
    "Client",
    "AsyncClient",
    "DatasetsClient",
    "AsyncDatasetsClient",
    "ClientConfig",
    "RetryConfig",
    "ContentType",
    "ContentEncoding",
    "load_client_config",
    "resolve",
    "PathStyle",
    "Legacy",
    "Edge",
    "AsIs",
    "classify",
    "Limit",
    "Limits",
    "RateLimit",
    "QueryLimit",
    "IngestLimit",
    "Response",
    "IngestStatus",
    "IngestFailure",
    "QueryOptions",
    "QueryResult",
    "Dataset",
    "chunks_timeout",
    "achunks_timeout",
    "encode_ndjson_gzip",
    "decode_ndjson_gzip",
    "AxiomError",
    "ConfigError",
    "MissingToken",
    "MissingOrgId",
    "InvalidToken",
    "InvalidOrgId",
    "InvalidUrl",
    "TransportError",
    "LimitExceeded",
    "RateLimitExceeded",
    "QueryLimitExceeded",
    "IngestLimitExceeded",
    "ApiError",
    "SerializationError",
    "DeserializationError",
    "IngestStreamError",
    "InvalidContentType",
    "InvalidContentEncoding",
]
