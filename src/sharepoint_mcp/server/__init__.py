"""MCP server exposing a SharePoint document library over stdio."""

from sharepoint_mcp.server.sharepoint_server import SharePointServer, main

__all__ = ["SharePointServer", "main"]
