"""Archive MCP Gateway - authenticated MCP access to the archive content API."""

from typing import TYPE_CHECKING, Any

__version__ = "0.4.0"

if TYPE_CHECKING:
    from archive_mcp.clients.archive_api import ArchiveClient
    from archive_mcp.mcp_gateway.server import ProtocolGateway


def __getattr__(name: str) -> Any:
    if name == "ArchiveClient":
        from archive_mcp.clients.archive_api import ArchiveClient

        return ArchiveClient
    if name == "ProtocolGateway":
        from archive_mcp.mcp_gateway.server import ProtocolGateway

        return ProtocolGateway
    raise AttributeError(f"module 'archive_mcp' has no attribute '{name}'")


__all__ = ["ArchiveClient", "ProtocolGateway", "__version__"]
