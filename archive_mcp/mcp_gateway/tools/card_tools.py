"""Card tools for the archive MCP gateway."""

from typing import Any

from archive_mcp.clients.archive_api import ArchiveClient
from archive_mcp.core.errors import ValidationError
from archive_mcp.mcp_gateway.tools.helpers import (
    card_document,
    card_listing,
    encode_card_name,
)
from archive_mcp.mcp_gateway.tools.registry import Tool

MAX_LIMIT = 100


def _limit(arguments: dict[str, Any], default: int = 50) -> int:
    value = arguments.get("limit", default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValidationError("limit must be a positive integer")
    return min(value, MAX_LIMIT)


def _offset(arguments: dict[str, Any]) -> int:
    value = arguments.get("offset", 0)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError("offset must be a non-negative integer")
    return value


class CardTools:
    """Read and write operations on archive cards."""

    def __init__(self, client: ArchiveClient) -> None:
        self.client = client

    @property
    def base_url(self) -> str:
        return self.client.config.base_url

    def get_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        name = str(arguments["name"])
        params: dict[str, Any] = {}
        if arguments.get("with_children"):
            params["with_children"] = True
        card = self.client.get(f"/cards/{encode_card_name(name)}", **params)
        return card_document(card or {"name": name}, self.base_url)

    def search_cards(self, arguments: dict[str, Any]) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for key in ("q", "type", "search_in", "updated_since", "updated_before"):
            if arguments.get(key):
                params[key] = arguments[key]
        page = self.client.paginated_get(
            "/cards",
            limit=_limit(arguments),
            offset=_offset(arguments),
            **params,
        )
        query = params.get("q")
        heading = f"Search results for '{query}'" if query else "Cards"
        return card_listing(
            page["data"],
            self.base_url,
            heading,
            total=page["total"],
            next_offset=page["next_offset"],
        )

    def list_children(self, arguments: dict[str, Any]) -> dict[str, Any]:
        name = str(arguments["name"])
        response = self.client.get(
            f"/cards/{encode_card_name(name)}/children",
            limit=_limit(arguments),
            offset=_offset(arguments),
        ) or {}
        children = response.get("children") or []
        return card_listing(
            children,
            self.base_url,
            f"Children of '{name}'",
            total=response.get("child_count"),
            next_offset=response.get("next_offset"),
        )

    def create_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": str(arguments["name"])}
        for key in ("content", "type"):
            if arguments.get(key) is not None:
                payload[key] = arguments[key]
        card = self.client.post("/cards", **payload)
        document = card_document(card or payload, self.base_url)
        document["metadata"]["action"] = "created"
        return document

    def update_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        name = str(arguments["name"])
        payload = {
            key: arguments[key] for key in ("content", "type") if arguments.get(key) is not None
        }
        if not payload:
            raise ValidationError("No update parameters provided (content or type)")
        card = self.client.patch(f"/cards/{encode_card_name(name)}", **payload)
        document = card_document(card or {"name": name, **payload}, self.base_url)
        document["metadata"]["action"] = "updated"
        return document

    def delete_card(self, arguments: dict[str, Any]) -> dict[str, Any]:
        name = str(arguments["name"])
        params = {"force": "true"} if arguments.get("force") else {}
        result = self.client.delete(f"/cards/{encode_card_name(name)}", **params) or {}
        return {
            "id": name,
            "status": "deleted",
            "text": f"Deleted card '{name}'",
            "result": result,
        }

    def definitions(self) -> list[Tool]:
        name_property = {"type": "string", "description": "Full card name, e.g. 'Parent+Child'"}
        paging = {
            "limit": {"type": "integer", "minimum": 1, "maximum": MAX_LIMIT, "default": 50},
            "offset": {"type": "integer", "minimum": 0, "default": 0},
        }
        return [
            Tool(
                name="get_card",
                description="Fetch a single card by its full name.",
                handler=self.get_card,
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": name_property,
                        "with_children": {"type": "boolean", "default": False},
                    },
                    "required": ["name"],
                },
            ),
            Tool(
                name="search_cards",
                description="Search cards by name or content, optionally filtered by type.",
                handler=self.search_cards,
                input_schema={
                    "type": "object",
                    "properties": {
                        "q": {"type": "string"},
                        "type": {"type": "string"},
                        "search_in": {"type": "string", "enum": ["name", "content", "both"]},
                        "updated_since": {"type": "string"},
                        "updated_before": {"type": "string"},
                        **paging,
                    },
                },
            ),
            Tool(
                name="list_children",
                description="List the child cards of a compound card.",
                handler=self.list_children,
                input_schema={
                    "type": "object",
                    "properties": {"name": name_property, **paging},
                    "required": ["name"],
                },
            ),
            Tool(
                name="create_card",
                description="Create a new card.",
                handler=self.create_card,
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": name_property,
                        "content": {"type": "string"},
                        "type": {"type": "string"},
                    },
                    "required": ["name"],
                },
            ),
            Tool(
                name="update_card",
                description="Update the content or type of an existing card.",
                handler=self.update_card,
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": name_property,
                        "content": {"type": "string"},
                        "type": {"type": "string"},
                    },
                    "required": ["name"],
                },
            ),
            Tool(
                name="delete_card",
                description="Delete a card (admin only). Use force to delete cards with children.",
                handler=self.delete_card,
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": name_property,
                        "force": {"type": "boolean", "default": False},
                    },
                    "required": ["name"],
                },
            ),
        ]
