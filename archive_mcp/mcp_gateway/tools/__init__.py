"""MCP Gateway tool modules."""

from archive_mcp.clients.archive_api import ArchiveClient
from archive_mcp.mcp_gateway.tools.card_tools import CardTools
from archive_mcp.mcp_gateway.tools.registry import Tool, ToolRegistry
from archive_mcp.mcp_gateway.tools.system_tools import SystemTools


def build_default_tools(client: ArchiveClient) -> ToolRegistry:
    """Register every built-in tool against one client."""
    registry = ToolRegistry()
    for tool in SystemTools(client).definitions() + CardTools(client).definitions():
        registry.register(tool)
    return registry


__all__ = [
    "CardTools",
    "SystemTools",
    "Tool",
    "ToolRegistry",
    "build_default_tools",
]
