from unittest.mock import Mock

import pytest

from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import (
    AuthorizationError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from archive_mcp.mcp_gateway.tools import CardTools, SystemTools, build_default_tools
from archive_mcp.mcp_gateway.tools.helpers import (
    card_url,
    encode_card_name,
    format_api_error,
    snippet,
)
from archive_mcp.mcp_gateway.tools.registry import Tool, ToolRegistry

BASE_URL = "https://wiki.example.org/api/mcp"


def _client() -> Mock:
    client = Mock()
    client.config = ArchiveConfig(base_url=BASE_URL, api_key="k")
    return client


class TestHelpers:
    def test_encode_keeps_compound_separator(self) -> None:
        assert encode_card_name("Games+Rules of Play") == "Games+Rules%20of%20Play"

    def test_card_url_uses_underscores(self) -> None:
        assert card_url(BASE_URL, "Main Page") == "https://wiki.example.org/Main_Page"

    def test_snippet_truncates(self) -> None:
        assert snippet("word " * 100, length=20) == "word word word wo..."
        assert snippet(None) == ""

    def test_format_errors(self) -> None:
        assert format_api_error(NotFoundError("gone"), "get_card", "X").startswith(
            "Not found: get_card 'X'."
        )
        assert format_api_error(AuthorizationError("admin only"), "delete_card").startswith(
            "Permission denied"
        )
        assert "HTTP 502" in format_api_error(ServerError("boom", status=502), "search_cards")


class TestCardTools:
    def test_get_card(self) -> None:
        client = _client()
        client.get.return_value = {
            "name": "Main Page",
            "content": "Welcome",
            "type": "RichText",
            "children": [{"name": "Main Page+intro"}],
        }

        document = CardTools(client).get_card({"name": "Main Page", "with_children": True})

        client.get.assert_called_once_with("/cards/Main%20Page", with_children=True)
        assert document["id"] == "Main Page"
        assert document["text"] == "# Main Page\n\nWelcome"
        assert document["source"] == "https://wiki.example.org/Main_Page"
        assert document["metadata"]["children"] == ["Main Page+intro"]

    def test_search_cards(self) -> None:
        client = _client()
        client.paginated_get.return_value = {
            "data": [{"name": "Dragon", "type": "Creature", "content": "Big"}],
            "total": 12,
            "limit": 10,
            "offset": 0,
            "next_offset": 10,
        }

        listing = CardTools(client).search_cards({"q": "dragon", "type": "Creature", "limit": 10})

        client.paginated_get.assert_called_once_with(
            "/cards", limit=10, offset=0, q="dragon", type="Creature"
        )
        assert listing["total"] == 12
        assert listing["next_offset"] == 10
        assert listing["results"][0]["snippet"] == "Big"
        assert listing["text"].startswith("Search results for 'dragon' (12 total)")

    def test_limit_is_capped(self) -> None:
        client = _client()
        client.paginated_get.return_value = {"data": [], "total": 0, "next_offset": None}

        CardTools(client).search_cards({"limit": 5000})

        assert client.paginated_get.call_args.kwargs["limit"] == 100

    def test_invalid_limit_rejected(self) -> None:
        with pytest.raises(ValidationError, match="limit"):
            CardTools(_client()).search_cards({"limit": 0})

    def test_list_children(self) -> None:
        client = _client()
        client.get.return_value = {"children": [{"name": "A+b"}], "child_count": 1}

        listing = CardTools(client).list_children({"name": "A"})

        client.get.assert_called_once_with("/cards/A/children", limit=50, offset=0)
        assert listing["total"] == 1
        assert listing["results"][0]["id"] == "A+b"

    def test_create_card(self) -> None:
        client = _client()
        client.post.return_value = {"name": "New", "content": "Body"}

        document = CardTools(client).create_card({"name": "New", "content": "Body"})

        client.post.assert_called_once_with("/cards", name="New", content="Body")
        assert document["metadata"]["action"] == "created"

    def test_update_requires_a_change(self) -> None:
        with pytest.raises(ValidationError, match="No update parameters"):
            CardTools(_client()).update_card({"name": "X"})

    def test_update_card(self) -> None:
        client = _client()
        client.patch.return_value = {"name": "X", "content": "v2"}

        document = CardTools(client).update_card({"name": "X", "content": "v2"})

        client.patch.assert_called_once_with("/cards/X", content="v2")
        assert document["metadata"]["action"] == "updated"

    def test_delete_card_with_force(self) -> None:
        client = _client()
        client.delete.return_value = None

        result = CardTools(client).delete_card({"name": "Old", "force": True})

        client.delete.assert_called_once_with("/cards/Old", force="true")
        assert result["status"] == "deleted"


class TestSystemTools:
    def test_health_check_summarises_checks(self) -> None:
        client = _client()
        client.health_check.return_value = {"status": "healthy", "checks": {"database": "ok"}}

        result = SystemTools(client).health_check({})

        assert result["status"] == "success"
        assert result["text"] == "Archive status: healthy\n- database: ok"


class TestRegistry:
    def test_default_tools(self) -> None:
        registry = build_default_tools(_client())

        assert registry.names() == [
            "health_check",
            "get_card",
            "search_cards",
            "list_children",
            "create_card",
            "update_card",
            "delete_card",
        ]
        assert "get_card" in registry
        assert registry.get("get_card").required_arguments == ["name"]

    def test_duplicate_name_rejected(self) -> None:
        tool = Tool(name="t", description="d", handler=lambda arguments: {})

        with pytest.raises(ValueError, match="Duplicate tool name"):
            ToolRegistry([tool, tool])
