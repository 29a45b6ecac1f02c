"""Page tool handlers for MCP server.

This module implements direct page operations: reading a page as Markdown
or storage format, and replacing a page body from Markdown.
All remote calls go through run_io() so they honour the configured timeout.
"""

import logging

import mcp.types as types

from ...converters import (
    convert_with_warnings,
    extract_image_references,
    replace_image_tags_with_macros,
    storage_to_markdown,
)
from ...converters.images import attachment_filename
from ...core.async_utils import IOOptions, run_io
from ...core.client import ConfluenceClient
from ...errors import VersionConflictError
from ...file_handler import guess_content_type, read_bytes_async
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# Tool definitions for list_tools()
PAGE_TOOLS = [
    types.Tool(
        name="page_get",
        description=(
            "Get a Confluence page with its version. Returns Markdown by "
            "default, or the raw storage format (XHTML) with format='storage'."
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
                "page_url": {
                    "type": "string",
                    "description": "Page URL or numeric page ID (required)",
                },
                "format": {
                    "type": "string",
                    "enum": ["markdown", "storage"],
                    "default": "markdown",
                    "description": "Output format (default: markdown)",
                },
            },
            "required": ["page_url"],
        },
    ),
    types.Tool(
        name="page_update_markdown",
        description=(
            "Replace a page body with Markdown converted to storage format. "
            "Pass expected_version for optimistic locking. Local images are "
            "uploaded as attachments when base_dir is given."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_url": {
                    "type": "string",
                    "description": "Page URL or numeric page ID (required)",
                },
                "content": {
                    "type": "string",
                    "description": "New page content in Markdown (required)",
                },
                "expected_version": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Version the edit is based on; the update fails if the page is newer",
                },
                "base_dir": {
                    "type": "string",
                    "description": "Directory relative image paths are resolved against (optional)",
                },
                "message": {
                    "type": "string",
                    "description": "Version comment (optional)",
                },
            },
            "required": ["page_url", "content"],
        },
    ),
]


def _options(client: ConfluenceClient) -> IOOptions:
    return IOOptions(timeout=client.config.timeout_seconds)


async def _handle_get(
    client: ConfluenceClient, args: dict
) -> types.CallToolResult:
    """Handle page_get."""
    page_url = args.get("page_url")
    if not page_url:
        return build_error_response(
            "validation_error",
            "page_url is required",
            "Provide page_url parameter.",
        )
    output_format = args.get("format", "markdown")
    if output_format not in ("markdown", "storage"):
        raise ValueError(f"Unsupported format: {output_format}")

    page_id = ConfluenceClient.extract_page_id(page_url)
    page = await run_io(
        client.get_page,
        page_id,
        target=f"page/{page_id}",
        options=_options(client),
    )

    if output_format == "storage":
        body = page.body
        warnings: list[str] = []
    else:
        conversion = storage_to_markdown(page.body)
        body = conversion.text
        warnings = conversion.warnings

    response_lines = [
        f"# {page.title}",
        f"Page {page.id}, version {page.version}",
        "",
        body,
    ]
    if warnings:
        response_lines.append("")
        response_lines.append("Conversion warnings:")
        for warning in warnings:
            response_lines.append(f"- {warning}")

    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text="\n".join(response_lines))
        ],
        structuredContent={
            "id": page.id,
            "title": page.title,
            "version": page.version,
            "format": output_format,
            "body": body,
            "warnings": warnings,
        },
    )


async def _upload_images(
    client: ConfluenceClient,
    page_id: str,
    content: str,
    base_dir: str,
) -> tuple[dict[str, str], list[str], list[str]]:
    """Upload local images referenced by *content*.

    Returns:
        (src -> attachment filename, uploaded filenames, warnings)
    """
    image_map: dict[str, str] = {}
    uploaded: list[str] = []
    warnings: list[str] = []
    for ref in extract_image_references(content, base_dir):
        if not ref.resolved_path.is_file():
            warnings.append(f"Image not found: {ref.original_path}")
            continue
        filename = attachment_filename(ref.original_path)
        data = await read_bytes_async(ref.resolved_path)
        await run_io(
            client.upload_attachment,
            page_id,
            filename,
            data,
            guess_content_type(filename),
            target=f"page/{page_id}/attachment/{filename}",
            options=_options(client),
        )
        image_map[ref.original_path] = filename
        uploaded.append(filename)
    return image_map, uploaded, warnings


async def _handle_update(
    client: ConfluenceClient, args: dict
) -> types.CallToolResult:
    """Handle page_update_markdown."""
    page_url = args.get("page_url")
    content = args.get("content")
    expected_version = args.get("expected_version")

    if not page_url:
        return build_error_response(
            "validation_error",
            "page_url is required",
            "Provide page_url parameter.",
        )
    if not content:
        return build_error_response(
            "validation_error",
            "content is required",
            "Provide content parameter.",
        )

    page_id = ConfluenceClient.extract_page_id(page_url)
    current = await run_io(
        client.get_page,
        page_id,
        target=f"page/{page_id}",
        options=_options(client),
    )
    if expected_version is not None and current.version != expected_version:
        raise VersionConflictError(
            f"Page {page_id} is at version {current.version}, "
            f"the edit is based on version {expected_version}",
            remote_version=current.version,
            local_version=expected_version,
        )

    conversion = convert_with_warnings(content)
    storage = conversion.text
    warnings = list(conversion.warnings)
    uploaded: list[str] = []

    base_dir = args.get("base_dir")
    if base_dir:
        image_map, uploaded, image_warnings = await _upload_images(
            client, page_id, content, base_dir
        )
        storage = replace_image_tags_with_macros(storage, image_map)
        warnings.extend(image_warnings)

    if warnings:
        logger.warning("Conversion warnings: %s", ", ".join(warnings))

    updated = await run_io(
        client.update_page,
        page_id,
        current.title,
        storage,
        current.version,
        target=f"page/{page_id}",
        options=_options(client),
        message=args.get("message"),
    )

    response_lines = [
        f"Updated page '{updated.title}' to version {updated.version}"
    ]
    if uploaded:
        response_lines.append(f"Uploaded images: {', '.join(uploaded)}")
    if warnings:
        response_lines.append("")
        response_lines.append("Conversion warnings:")
        for warning in warnings:
            response_lines.append(f"- {warning}")

    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text="\n".join(response_lines))
        ],
        structuredContent={
            "id": updated.id,
            "title": updated.title,
            "version": updated.version,
            "uploadedImages": uploaded,
            "warnings": warnings,
        },
    )


# ToolSpec list for registry-based dispatch
PAGE_SPECS: list[ToolSpec] = [
    ToolSpec(tool=PAGE_TOOLS[0], handler=_handle_get, read_only=True),
    ToolSpec(tool=PAGE_TOOLS[1], handler=_handle_update),
]
