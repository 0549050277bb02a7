from dataclasses import dataclass
from enum import Enum

from .errors import (
    InvalidContentEncoding,
    InvalidContentType,
    InvalidOrgId,
    InvalidToken,
    MissingOrgId,
    MissingToken,
)

SDK_VERSION = "0.1.0"

# Axiom Cloud API. Personal tokens need an org id here.
API_URL = "https://api.axiom.co"
# Ingest and query go to the US East 1 edge unless told otherwise.
DEFAULT_EDGE_URL = "https://us-east-1.aws.edge.axiom.co"

PERSONAL_TOKEN_PREFIX = "xapt-"


def is_personal_token(token: str) -> bool:
    return token.startswith(PERSONAL_TOKEN_PREFIX)


def _header_safe(value: str) -> bool:
    return value.isascii() and not any(c in value for c in "\r\n\0")


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client settings, validated on construction.

    Use ``axiom_sdk.env.load_client_config`` to fill unset values from the
    environment; this class never reads the environment itself.
    """

    token: str
    org_id: str | None = None
    url: str = API_URL
    # Edge configuration. Both may be set; the endpoint resolver picks one.
    ingest_url: str | None = None
    region: str | None = None

    def __post_init__(self):
        if not self.token:
            raise MissingToken()
        if not _header_safe(self.token):
            raise InvalidToken()
        if self.org_id is not None and not _header_safe(self.org_id):
            raise InvalidOrgId()
        if self.url == API_URL and not self.org_id and is_personal_token(self.token):
            raise MissingOrgId()


@dataclass(frozen=True)
class RetryConfig:
    # Exponential backoff between attempts
    initial_interval: float = 0.5
    multiplier: float = 2.0
    # Budget for the sum of delays between attempts (not attempt duration)
    max_elapsed: float = 30.0

    # Applied to every physical attempt independently
    attempt_timeout: float = 10.0


class ContentType(str, Enum):
    JSON = "application/json"
    NDJSON = "application/x-ndjson"
    CSV = "text/csv"

    @classmethod
    def parse(cls, value: str) -> "ContentType":
        try:
            return cls(value)
        except ValueError:
            raise InvalidContentType(value) from None


class ContentEncoding(str, Enum):
    IDENTITY = ""
    GZIP = "gzip"
    ZSTD = "zstd"

    @classmethod
    def parse(cls, value: str) -> "ContentEncoding":
        try:
            return cls(value)
        except ValueError:
            raise InvalidContentEncoding(value) from None
