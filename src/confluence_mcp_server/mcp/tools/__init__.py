"""MCP tool handlers for Confluence operations.

This package contains MCP tool implementations that wrap the core
ConfluenceClient and the SyncManager with async handlers, Markdown
conversion, and structured error responses.
"""

from .errors import build_error_response, translate_domain_error
from .page import PAGE_SPECS, PAGE_TOOLS
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = PAGE_SPECS + SYNC_SPECS

__all__ = [
    "build_error_response",
    "translate_domain_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "PAGE_SPECS",
    "SYNC_SPECS",
    # Tool lists
    "PAGE_TOOLS",
    "SYNC_TOOLS",
]
