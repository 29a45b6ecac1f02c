"""Confluence MCP server: page and attachment sync with a local cache."""

__version__ = "0.4.0"
