"""Configuration for the standalone MCP server.

Reads Confluence connection settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CONFLUENCE_URL: Confluence site URL, e.g. https://example.atlassian.net (required)
    CONFLUENCE_EMAIL: Account email used for basic auth (required)
    CONFLUENCE_API_TOKEN: API token (required)
    CONFLUENCE_INSECURE: Skip SSL verification (optional, default: false)
    CONFLUENCE_DEBUG: Enable debug logging (optional, default: false)
    CONFLUENCE_DATA_DIR: Root of the local page cache (optional, default: confluence-data)
    CONFLUENCE_TIMEOUT: Seconds per remote call (optional, default: 10)
    CONFLUENCE_MAX_PARALLEL_REQUESTS: Max parallel HTTP requests (optional, default: 5)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "confluence-data"


@dataclass
class Config:
    confluence_url: str
    email: str
    api_token: str
    insecure: bool = False
    debug: bool = False
    data_dir: str = DEFAULT_DATA_DIR
    timeout_seconds: float = 10.0
    max_parallel_requests: int = 5


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid, credentials are empty, or a
            numeric setting is out of range.
    """
    config.confluence_url = config.confluence_url.strip()

    if not config.confluence_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid Confluence URL '{config.confluence_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.confluence_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid Confluence URL '{config.confluence_url}': URL must include a hostname"
        )

    config.confluence_url = config.confluence_url.removesuffix("/")
    # The client appends /wiki/rest/api itself
    config.confluence_url = config.confluence_url.removesuffix("/wiki")

    if not config.email.strip():
        raise ValueError(
            "Confluence email cannot be empty. Set CONFLUENCE_EMAIL environment variable."
        )

    if not config.api_token.strip():
        raise ValueError(
            "Confluence API token cannot be empty. Set CONFLUENCE_API_TOKEN environment variable."
        )

    if not (0 < config.timeout_seconds <= 600):
        raise ValueError(
            f"Invalid timeout {config.timeout_seconds}: must be between 0 and 600 seconds"
        )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: must be between 1 and 100"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    url: str | None = None,
    email: str | None = None,
    api_token: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    data_dir: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override Confluence URL.
        email: Override account email.
        api_token: Override API token.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        data_dir: Override local cache root.
        yaml_fallbacks: Flat dict of values from the YAML ``confluence``
            and ``sync`` sections, used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (URL, email, token) is missing
            after checking all sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    confluence_url = url or os.getenv("CONFLUENCE_URL") or fb.get("url")
    if not confluence_url:
        raise ValueError(
            "Confluence URL not found. Set CONFLUENCE_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    final_email = email or os.getenv("CONFLUENCE_EMAIL") or fb.get("email")
    if not final_email:
        raise ValueError(
            "Confluence email not found. Set CONFLUENCE_EMAIL environment variable, "
            "pass --email CLI argument, or add 'email' to config.yml."
        )

    final_token = (
        api_token
        or os.getenv("CONFLUENCE_API_TOKEN")
        or fb.get("api_token")
    )
    if not final_token:
        raise ValueError(
            "Confluence API token not found. Set CONFLUENCE_API_TOKEN environment variable, "
            "pass --api-token CLI argument, or add 'api_token' to config.yml."
        )

    final_data_dir = (
        data_dir
        or os.getenv("CONFLUENCE_DATA_DIR")
        or fb.get("data_dir")
        or DEFAULT_DATA_DIR
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("CONFLUENCE_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("CONFLUENCE_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    # --- Numeric fields: env > YAML > default ---

    timeout_raw = os.getenv("CONFLUENCE_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid CONFLUENCE_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout_seconds" in fb:
        final_timeout = float(fb["timeout_seconds"])
    else:
        final_timeout = 10.0

    max_parallel_raw = os.getenv("CONFLUENCE_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid CONFLUENCE_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 100"
            ) from None
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = 5

    config = Config(
        confluence_url=confluence_url.strip(),
        email=final_email.strip(),
        api_token=final_token.strip(),
        insecure=final_insecure,
        debug=final_debug,
        data_dir=final_data_dir,
        timeout_seconds=final_timeout,
        max_parallel_requests=final_max_parallel,
    )

    validate_config(config)

    return config
