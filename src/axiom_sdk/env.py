import os

from .types import API_URL, ClientConfig

ENV_TOKEN = "AXIOM_TOKEN"
ENV_ORG_ID = "AXIOM_ORG_ID"
ENV_URL = "AXIOM_URL"
ENV_INGEST_URL = "AXIOM_INGEST_URL"
ENV_REGION = "AXIOM_REGION"


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                if key.startswith("export "):
                    key = key[len("export ") :].strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # A missing file just means nothing to augment
        pass
    return values


def load_client_config(
    token: str | None = None,
    org_id: str | None = None,
    url: str | None = None,
    ingest_url: str | None = None,
    region: str | None = None,
    env_fallback: bool = True,
    env_path: str | None = None,
) -> ClientConfig:
    """Build a ClientConfig, filling unset values from the environment.

    Explicit arguments win. Empty strings count as unset. With 'env_fallback'
    the AXIOM_* variables are consulted; if 'env_path' is provided, variables
    from that .env file augment lookups (without mutating the process
    environment), with the actual environment taking precedence over the file.

    This runs once per client; the returned config never changes.
    """
    env_map: dict[str, str] = {}
    if env_fallback:
        file_env = _parse_env_file(env_path) if env_path else {}
        env_map = {**file_env, **os.environ}

    def pick(explicit: str | None, var: str) -> str | None:
        if explicit:
            return explicit
        return env_map.get(var) or None

    return ClientConfig(
        token=pick(token, ENV_TOKEN) or "",
        org_id=pick(org_id, ENV_ORG_ID),
        url=pick(url, ENV_URL) or API_URL,
        ingest_url=pick(ingest_url, ENV_INGEST_URL),
        region=pick(region, ENV_REGION),
    )
