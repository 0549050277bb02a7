"""Resolve where ingest and query requests go, and how their paths look.

There are three path styles:

- ``Legacy``: dataset-scoped paths on the API URL
  (``/v1/datasets/{name}/ingest``, ``/v1/datasets/_apl``)
- ``Edge``: flat paths on a regional edge (``/v1/ingest/{name}``, ``/v1/query/_apl``)
- ``AsIs``: the configured URL already is the full target; nothing is appended

Precedence, highest first:

1. ``ingest_url`` with a path other than ``/``  -> ``AsIs``
2. ``ingest_url`` without a path                -> ``Edge``
3. ``region``                                   -> ``Edge`` on ``https://{region}``
4. default cloud API URL                        -> ``Edge`` on the default edge
5. anything else                                -> ``Legacy`` on the API URL
"""

from dataclasses import dataclass
from typing import Union
from urllib.parse import quote, urlsplit

from .errors import InvalidUrl
from .types import API_URL, DEFAULT_EDGE_URL, ClientConfig


@dataclass(frozen=True)
class Legacy:
    base_url: str

    def ingest_path(self, dataset: str) -> str:
        return f"/v1/datasets/{quote(dataset, safe='')}/ingest"

    def query_path(self) -> str:
        return "/v1/datasets/_apl"


@dataclass(frozen=True)
class Edge:
    base_url: str

    def ingest_path(self, dataset: str) -> str:
        return f"/v1/ingest/{quote(dataset, safe='')}"

    def query_path(self) -> str:
        return "/v1/query/_apl"


@dataclass(frozen=True)
class AsIs:
    base_url: str

    def ingest_path(self, dataset: str) -> str:
        return ""

    def query_path(self) -> str:
        return ""


PathStyle = Union[Legacy, Edge, AsIs]


def validate_url(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise InvalidUrl(url, str(e)) from e
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidUrl(url)
    return url


def _has_path(url: str) -> bool:
    return urlsplit(url).path not in ("", "/")


def resolve(config: ClientConfig) -> tuple[str, PathStyle]:
    """Return the API base URL and the path style for ingest/query requests."""
    api_url = validate_url(config.url)

    if config.ingest_url:
        ingest_url = validate_url(config.ingest_url)
        if _has_path(ingest_url):
            return api_url, AsIs(ingest_url)
        return api_url, Edge(ingest_url)

    if config.region:
        region = config.region.rstrip("/")
        return api_url, Edge(validate_url(f"https://{region}"))

    if api_url == API_URL:
        return api_url, Edge(DEFAULT_EDGE_URL)

    return api_url, Legacy(api_url)
