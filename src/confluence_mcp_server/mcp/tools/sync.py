"""MCP tool handlers for page and attachment sync.

Defines five tools:

- ``page_body_download`` -- fetch the page body into the local cache.
- ``page_body_upload`` -- push the edited body back to Confluence.
- ``page_attachments_download`` -- fetch new or changed attachments.
- ``page_attachments_upload`` -- push locally changed attachments.
- ``page_sync_status`` -- show what the local cache holds for a page.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import IOOptions
from ...core.client import ConfluenceClient
from ...sync.layout import CacheLayout
from ...sync.manager import SyncManager
from ...sync.oplog import SyncContext
from ...sync.reporter import (
    format_attachments_download,
    format_attachments_upload,
    format_body_download,
    format_body_upload,
    format_sync_status,
    result_to_json,
)
from ...sync.state import MetaStore
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


_PAGE_URL_PROPERTY = {
    "type": "string",
    "description": "Page URL (.../pages/<id>/...) or numeric page ID",
}

_TIMEOUT_PROPERTY = {
    "type": "number",
    "exclusiveMinimum": 0,
    "description": "Seconds allowed per remote call (default from config)",
}

_INCLUDE_TITLES_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Only process attachments with these titles",
}


def _dir_property(description: str) -> dict:
    return {"type": "string", "description": description}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="page_body_download",
        description=(
            "Download a Confluence page body into the local cache as "
            "pretty-printed storage format (page-body.xhtml). Skips the "
            "write when nothing changed since the last download."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_url": _PAGE_URL_PROPERTY,
                "output_dir": _dir_property(
                    "Cache root directory (default from config)"
                ),
                "timeout_seconds": _TIMEOUT_PROPERTY,
            },
            "required": ["page_url"],
        },
    ),
    types.Tool(
        name="page_body_upload",
        description=(
            "Upload the locally edited page-body.xhtml. Fails with a "
            "version conflict if the page changed remotely since the last "
            "download; does nothing if the body is unchanged."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_url": _PAGE_URL_PROPERTY,
                "input_dir": _dir_property(
                    "Cache root directory (default from config)"
                ),
                "message": {
                    "type": "string",
                    "description": "Version comment (optional)",
                },
                "timeout_seconds": _TIMEOUT_PROPERTY,
            },
            "required": ["page_url"],
        },
    ),
    types.Tool(
        name="page_attachments_download",
        description=(
            "Download new or changed page attachments into the local cache. "
            "Without include_titles, local attachments deleted remotely are "
            "removed as well."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_url": _PAGE_URL_PROPERTY,
                "output_dir": _dir_property(
                    "Cache root directory (default from config)"
                ),
                "include_titles": _INCLUDE_TITLES_PROPERTY,
                "timeout_seconds": _TIMEOUT_PROPERTY,
            },
            "required": ["page_url"],
        },
    ),
    types.Tool(
        name="page_attachments_upload",
        description=(
            "Upload tracked attachments whose local files changed since the "
            "last sync. New files must be downloaded or registered first."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_url": _PAGE_URL_PROPERTY,
                "input_dir": _dir_property(
                    "Cache root directory (default from config)"
                ),
                "include_titles": _INCLUDE_TITLES_PROPERTY,
                "timeout_seconds": _TIMEOUT_PROPERTY,
            },
            "required": ["page_url"],
        },
    ),
    types.Tool(
        name="page_sync_status",
        description=(
            "Show the local cache state for a page: version, timestamps, "
            "tracked attachments. Does not contact Confluence."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_url": _PAGE_URL_PROPERTY,
                "output_dir": _dir_property(
                    "Cache root directory (default from config)"
                ),
            },
            "required": ["page_url"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_page_url(args: dict[str, Any]) -> str:
    page_url = args.get("page_url")
    if not page_url:
        raise ValueError("page_url is required")
    return str(page_url)


def _context(client: ConfluenceClient, args: dict[str, Any]) -> SyncContext:
    """Build the per-call context from ``timeout_seconds`` or the config."""
    timeout = args.get("timeout_seconds")
    if timeout is None:
        timeout = client.config.timeout_seconds
    elif not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError("timeout_seconds must be a positive number")
    return SyncContext(options=IOOptions(timeout=float(timeout)))


def _include_titles(args: dict[str, Any]) -> list[str] | None:
    titles = args.get("include_titles")
    if titles is None:
        return None
    if not isinstance(titles, list) or not all(
        isinstance(t, str) for t in titles
    ):
        raise ValueError("include_titles must be a list of strings")
    return titles


def _result(text: str, result) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=result_to_json(result),
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_body_download(
    client: ConfluenceClient, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``page_body_download`` tool."""
    page_url = _require_page_url(args)
    ctx = _context(client, args)
    manager = SyncManager(client, data_dir=client.config.data_dir)
    result = await manager.download_body(
        page_url, root=args.get("output_dir"), ctx=ctx
    )
    return _result(format_body_download(result), result)


async def _handle_body_upload(
    client: ConfluenceClient, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``page_body_upload`` tool."""
    page_url = _require_page_url(args)
    ctx = _context(client, args)
    manager = SyncManager(client, data_dir=client.config.data_dir)
    result = await manager.upload_body(
        page_url,
        root=args.get("input_dir"),
        ctx=ctx,
        message=args.get("message"),
    )
    return _result(format_body_upload(result), result)


async def _handle_attachments_download(
    client: ConfluenceClient, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``page_attachments_download`` tool."""
    page_url = _require_page_url(args)
    ctx = _context(client, args)
    manager = SyncManager(client, data_dir=client.config.data_dir)
    result = await manager.download_attachments(
        page_url,
        root=args.get("output_dir"),
        include_titles=_include_titles(args),
        ctx=ctx,
    )
    return _result(format_attachments_download(result), result)


async def _handle_attachments_upload(
    client: ConfluenceClient, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``page_attachments_upload`` tool."""
    page_url = _require_page_url(args)
    ctx = _context(client, args)
    manager = SyncManager(client, data_dir=client.config.data_dir)
    result = await manager.upload_attachments(
        page_url,
        root=args.get("input_dir"),
        include_titles=_include_titles(args),
        ctx=ctx,
    )
    return _result(format_attachments_upload(result), result)


async def _handle_sync_status(
    client: ConfluenceClient, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``page_sync_status`` tool."""
    page_url = _require_page_url(args)
    page_id = ConfluenceClient.extract_page_id(page_url)
    layout = CacheLayout.resolve(
        page_id, args.get("output_dir") or client.config.data_dir
    )
    meta = MetaStore(layout.meta_file).load()
    if meta is None:
        return build_error_response(
            "local_state_missing",
            f"No meta.json for page {page_id} under {layout.root}",
            "Run page_body_download or page_attachments_download first.",
        )

    structured = meta.model_dump(by_alias=True)
    structured["pageFile"] = str(layout.page_file)
    structured["pageFilePresent"] = layout.page_file.is_file()
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text=format_sync_status(meta, layout)
            )
        ],
        structuredContent=structured,
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SYNC_TOOLS[0],
        handler=_handle_body_download,
        read_only=True,
    ),
    ToolSpec(tool=SYNC_TOOLS[1], handler=_handle_body_upload),
    ToolSpec(
        tool=SYNC_TOOLS[2],
        handler=_handle_attachments_download,
        read_only=True,
    ),
    ToolSpec(tool=SYNC_TOOLS[3], handler=_handle_attachments_upload),
    ToolSpec(
        tool=SYNC_TOOLS[4],
        handler=_handle_sync_status,
        read_only=True,
    ),
]
