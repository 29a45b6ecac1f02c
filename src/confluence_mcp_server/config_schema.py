"""Unified configuration schema for confluence_mcp_server.

Defines Pydantic models for the YAML config structure with dedicated
sections for the Confluence connection, the local sync cache, and logging.
Includes an adapter to the flat ``Config`` dataclass used at runtime.

Usage:
    from confluence_mcp_server.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"url": "https://..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ConfluenceConfig(BaseModel):
    """Confluence connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Confluence site URL")
    email: str | None = Field(default=None, description="Account email")
    api_token: str | None = Field(default=None, description="API token")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent requests to Confluence (1-100)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Local page cache settings.

    Attributes:
        data_dir: Root directory of the page cache.
        timeout_seconds: Default timeout for each remote call.
    """

    data_dir: str = Field(
        default="confluence-data", description="Local cache root"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=600,
        description="Seconds before a remote call times out",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` is always
    valid.
    """

    confluence: ConfluenceConfig = Field(default_factory=ConfluenceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def fallbacks(self) -> dict:
        """Flatten the connection and sync sections for ``load_config()``.

        ``None`` values are dropped so they do not shadow defaults.
        """
        merged = {
            **self.sync.model_dump(),
            **self.confluence.model_dump(),
        }
        return {k: v for k, v in merged.items() if v is not None}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    Precedence: CLI override > unified config value > empty/default.

    CLI overrides dict keys: url, email, api_token, insecure, debug, data_dir.

    Returns:
        ``Config`` instance (NOT validated; run ``validate_config()``).
    """
    # Import here to avoid circular imports
    from .config import Config

    overrides = cli_overrides or {}

    return Config(
        confluence_url=overrides.get("url") or unified.confluence.url or "",
        email=overrides.get("email") or unified.confluence.email or "",
        api_token=overrides.get("api_token")
        or unified.confluence.api_token
        or "",
        insecure=overrides.get("insecure", False)
        or unified.confluence.insecure,
        debug=overrides.get("debug", False) or unified.confluence.debug,
        data_dir=overrides.get("data_dir") or unified.sync.data_dir,
        timeout_seconds=unified.sync.timeout_seconds,
        max_parallel_requests=unified.confluence.max_parallel_requests,
    )
