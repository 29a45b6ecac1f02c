"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import ConfluenceClient
from ..logger import register_secret

logger = logging.getLogger(__name__)

_CREDENTIALS_HINT = "CONFLUENCE_URL, CONFLUENCE_EMAIL, CONFLUENCE_API_TOKEN"


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create ConfluenceClient and validate credentials
    - Fail fast if Confluence is unreachable

    Args:
        config_overrides: Optional dict with config values from CLI (url, email, api_token, insecure, data_dir)

    Yields:
        Dict with 'client' and 'config' keys

    Raises:
        RuntimeError: If configuration is invalid or the connection fails.
    """
    logger.info("MCP server starting...")
    _stderr_print("Confluence MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = unified.fallbacks()
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            email=overrides.get("email"),
            api_token=overrides.get("api_token"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            data_dir=overrides.get("data_dir"),
            yaml_fallbacks=yaml_fallbacks,
        )
        register_secret(config.api_token)

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Confluence URL: %s", config.confluence_url)
        _stderr_print(f"  Confluence URL: {config.confluence_url}")
        _stderr_print(f"  Data directory: {config.data_dir}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(f"  Ensure {_CREDENTIALS_HINT} are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure {_CREDENTIALS_HINT} are set."
        ) from e

    logger.info("Validating Confluence connection...")
    _stderr_print("  Validating Confluence connection...")
    try:
        client = ConfluenceClient(config)
        user = await run_sync(
            client.validate_connection, config.timeout_seconds
        )
        logger.info("Connected to Confluence as %s", user)
        _stderr_print(f"  Connected as {user}")
        init_semaphore(config.max_parallel_requests)
        _stderr_print(
            f"  Parallel requests: {config.max_parallel_requests}"
        )
        _stderr_print(
            "Server ready. Waiting for MCP client connection..."
        )
    except Exception as e:
        logger.error("Failed to connect to Confluence: %s", e)
        _stderr_print("ERROR: Confluence connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print(f"  Check {_CREDENTIALS_HINT}.")
        raise RuntimeError(
            f"Confluence connection failed: {e}. Check {_CREDENTIALS_HINT}."
        ) from e

    yield {"client": client, "config": config}

    logger.info("MCP server shutting down")
    _stderr_print("Confluence MCP Server shutting down.")
