"""SharePoint MCP Server.

Connect Claude to SharePoint document libraries through Microsoft Graph.
"""

from sharepoint_mcp.__version__ import __version__

__all__ = ["__version__"]
