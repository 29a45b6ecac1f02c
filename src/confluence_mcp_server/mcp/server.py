"""stdio MCP server exposing Confluence page and cache-sync tools.

The server owns two process-wide objects: the ``ConfluenceClient`` created
by the lifespan manager and the ``ToolRegistry`` built from the CLI flags.
Tool calls are dispatched through the registry; everything user-facing
outside the protocol goes to stderr so stdout stays clean for JSON-RPC.
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..core.client import ConfluenceClient
from ..logger import setup_logging
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

SERVER_NAME = "confluence-mcp-server"
DEFAULT_LOG_FILE = "/tmp/confluence-mcp-server.log"

server = Server(SERVER_NAME)

_confluence_client: ConfluenceClient | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# ping
# ---------------------------------------------------------------------------


def _text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


async def _handle_ping(
    client: ConfluenceClient, args: dict
) -> types.CallToolResult:
    try:
        user = await run_sync(
            client.validate_connection, client.config.timeout_seconds
        )
    except Exception as e:
        return _text_result(
            f"Confluence connection failed: {e}. Check CONFLUENCE_URL, "
            "CONFLUENCE_EMAIL and CONFLUENCE_API_TOKEN.",
            is_error=True,
        )
    return _text_result(f"Confluence MCP server connected successfully as {user}.")


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description=(
            "Check that the server can reach Confluence and report the "
            "authenticated user"
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    handler=_handle_ping,
    read_only=True,
)


# ---------------------------------------------------------------------------
# Process-wide state
# ---------------------------------------------------------------------------


def get_client() -> ConfluenceClient:
    """Return the active client.

    Raises:
        RuntimeError: Before the lifespan manager has created one.
    """
    if _confluence_client is None:
        raise RuntimeError(
            "ConfluenceClient not initialized. Server lifespan not started."
        )
    return _confluence_client


def set_client(client: ConfluenceClient | None) -> None:
    global _confluence_client
    _confluence_client = client


def get_registry() -> ToolRegistry:
    """Return the active registry.

    Raises:
        RuntimeError: Before ``main()`` has built one.
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# Protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """Tools of the active registry (read-only ones under ``--read-only``)."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    client = get_client()
    try:
        return await get_registry().call_tool(name, arguments, client)
    except ValueError as e:
        # Raised only for names the registry does not expose
        return build_error_response(
            "unknown_tool", str(e), "Use list_tools to see available tools."
        )


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def _build_registry(read_only: bool) -> ToolRegistry:
    specs = [PING_SPEC, *ALL_SPECS]
    registry = ToolRegistry(specs, read_only=read_only)
    logger.info(
        "Registered %d of %d tools%s",
        registry.tool_count(),
        len(specs),
        " (read-only)" if read_only else "",
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of {len(specs)} tools enabled",
            file=sys.stderr,
        )
    return registry


async def main(config_overrides: dict | None = None):
    """Start logging, connect to Confluence and serve MCP over stdio.

    Args:
        config_overrides: Values from the command line; see
            ``overrides_from_args()``.
    """
    overrides = config_overrides or {}

    # Before stdio_server, so no log line can land on stdout
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))
    set_registry(_build_registry(bool(overrides.get("read_only"))))

    # The client is installed here and not in lifespan.py: under
    # ``python -m`` this module is __main__ and a re-import would hold a
    # second _confluence_client.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_client(ctx["client"])
        try:
            async with mcp.server.stdio.stdio_server() as (reader, writer):
                await server.run(
                    reader,
                    writer,
                    InitializationOptions(
                        server_name=SERVER_NAME,
                        server_version=__version__,
                        capabilities=server.get_capabilities(
                            notification_options=NotificationOptions(),
                            experimental_capabilities={},
                        ),
                    ),
                )
        finally:
            set_client(None)
            set_registry(None)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

_EPILOG = """
Examples:
  confluence-mcp-server
  confluence-mcp-server --url https://example.atlassian.net
  confluence-mcp-server --data-dir ~/confluence-cache
  confluence-mcp-server --read-only
  confluence-mcp-server --log-file /var/log/confluence-mcp-server.log

Settings not given on the command line come from CONFLUENCE_* environment
variables (or .env), then from .confluence_mcp/config.yml.

The server talks JSON-RPC over stdin/stdout; messages for humans go to
stderr.
"""

# argparse dests, which double as config override keys
_OVERRIDE_KEYS = (
    "url",
    "email",
    "api_token",
    "insecure",
    "data_dir",
    "log_file",
    "read_only",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=SERVER_NAME,
        description="MCP server that syncs Confluence pages and attachments "
        "with a local cache",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )
    parser.add_argument("--url", help="Confluence site URL (overrides CONFLUENCE_URL)")
    parser.add_argument(
        "--email", help="Account email (overrides CONFLUENCE_EMAIL)"
    )
    parser.add_argument(
        "--api-token",
        help="API token (overrides CONFLUENCE_API_TOKEN). Visible in the "
        "process list, so prefer the environment variable.",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Do not verify TLS certificates (development only)",
    )
    parser.add_argument(
        "--data-dir",
        help="Root of the local page cache (default: confluence-data)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Hide every tool that writes to Confluence",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{SERVER_NAME} version {__version__}",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict:
    """Config overrides for the flags that were actually given."""
    return {
        key: getattr(args, key)
        for key in _OVERRIDE_KEYS
        if getattr(args, key)
    }


def run() -> None:
    """Console script entry point."""
    overrides = overrides_from_args(build_parser().parse_args())

    shown = [key for key in overrides if key != "api_token"]
    if shown:
        print(f"Config overrides from CLI: {', '.join(shown)}", file=sys.stderr)

    try:
        asyncio.run(main(config_overrides=overrides or None))
    except RuntimeError:
        # The lifespan manager has already reported the cause on stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
