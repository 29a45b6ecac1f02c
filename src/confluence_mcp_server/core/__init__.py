"""Core Confluence client functionality shared between CLI and MCP server."""

from .async_utils import IOOptions, run_io, run_sync
from .client import ConfluenceClient

__all__ = ["ConfluenceClient", "IOOptions", "run_io", "run_sync"]
