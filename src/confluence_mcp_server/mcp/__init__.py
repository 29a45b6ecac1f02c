"""stdio MCP server exposing Confluence page and sync tools."""
