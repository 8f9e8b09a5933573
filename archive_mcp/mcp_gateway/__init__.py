"""Archive MCP Gateway - MCP transports in front of the archive content API."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from archive_mcp.mcp_gateway.dispatcher import MethodDispatcher
    from archive_mcp.mcp_gateway.server import ProtocolGateway, build_app


def __getattr__(name: str) -> Any:
    if name == "ProtocolGateway":
        from archive_mcp.mcp_gateway.server import ProtocolGateway

        return ProtocolGateway
    if name == "build_app":
        from archive_mcp.mcp_gateway.server import build_app

        return build_app
    if name == "MethodDispatcher":
        from archive_mcp.mcp_gateway.dispatcher import MethodDispatcher

        return MethodDispatcher
    raise AttributeError(f"module 'archive_mcp.mcp_gateway' has no attribute '{name}'")


__all__ = ["MethodDispatcher", "ProtocolGateway", "build_app"]
