"""Command-line interface for sharepoint-mcp."""
