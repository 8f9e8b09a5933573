"""System tools for the archive MCP gateway."""

from typing import Any

from archive_mcp.clients.archive_api import ArchiveClient
from archive_mcp.mcp_gateway.tools.registry import Tool


class SystemTools:
    """Health and connectivity checks against the archive API."""

    def __init__(self, client: ArchiveClient) -> None:
        self.client = client

    def health_check(self, arguments: dict[str, Any]) -> dict[str, Any]:
        health = self.client.health_check()
        status = health.get("status", "unknown")
        lines = [f"Archive status: {status}"]
        checks = health.get("checks")
        if isinstance(checks, dict):
            for name, result in checks.items():
                lines.append(f"- {name}: {result}")
        return {"status": "success", "text": "\n".join(lines), "health": health}

    def definitions(self) -> list[Tool]:
        return [
            Tool(
                name="health_check",
                description="Check whether the archive API is reachable and healthy.",
                handler=self.health_check,
            )
        ]
