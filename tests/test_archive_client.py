import json
from typing import Any
from unittest.mock import Mock, patch

import pytest
import requests

from archive_mcp.clients.archive_api import ArchiveClient
from archive_mcp.clients.credentials import Token
from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import (
    APIError,
    AuthorizationError,
    NotFoundError,
    ServerError,
    ValidationError,
)

BASE_URL = "https://archive.example.org/api/mcp"


def _response(status: int, body: Any = None) -> Mock:
    text = "" if body is None else json.dumps(body)
    response = Mock(status_code=status, text=text, content=text.encode())
    response.json = Mock(return_value=body)
    return response


def _client(*responses: Any) -> tuple[ArchiveClient, Mock]:
    session = Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    credentials = Mock()
    credentials.token.return_value = Token(value="tok-1", expires_at=1e12, issued_at=0.0)
    config = ArchiveConfig(base_url=BASE_URL, api_key="key-1", role="user")
    return ArchiveClient(config, credentials=credentials, session=session), session


class TestRequests:
    def test_get_injects_bearer_token(self) -> None:
        client, session = _client(_response(200, {"name": "Home"}))

        assert client.get("/cards/Home") == {"name": "Home"}

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("GET", f"{BASE_URL}/cards/Home")
        assert kwargs["headers"] == {"Authorization": "Bearer tok-1"}
        assert kwargs["params"] is None

    def test_post_sends_json_body(self) -> None:
        client, session = _client(_response(201, {"name": "New"}))

        client.post("/cards", name="New", content="hello")

        kwargs = session.request.call_args.kwargs
        assert kwargs["json"] == {"name": "New", "content": "hello"}
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_empty_body_returns_none(self) -> None:
        client, _ = _client(_response(204))

        assert client.delete("/cards/Old") is None

    def test_default_accept_header(self) -> None:
        client, session = _client()

        assert session.headers["Accept"] == "application/json"


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "error_class"),
        [(403, AuthorizationError), (404, NotFoundError), (422, ValidationError)],
    )
    def test_client_errors_are_not_retried(self, status: int, error_class: type) -> None:
        client, session = _client(_response(status, {"error": "nope", "message": "bad"}))

        with patch("archive_mcp.core.retry.time.sleep") as sleep_mock:
            with pytest.raises(error_class, match="bad"):
                client.get("/cards/X")

        assert session.request.call_count == 1
        sleep_mock.assert_not_called()

    def test_server_error_retried_then_raised(self) -> None:
        client, session = _client(*[_response(503, {"error": "unavailable"}) for _ in range(4)])

        with patch("archive_mcp.core.retry.time.sleep") as sleep_mock:
            with pytest.raises(ServerError) as exc_info:
                client.get("/cards/X")

        assert exc_info.value.status == 503
        assert session.request.call_count == 4
        assert [call.args[0] for call in sleep_mock.call_args_list] == [1.0, 2.0, 4.0]

    def test_rate_limit_recovers(self) -> None:
        client, session = _client(_response(429), _response(200, {"ok": True}))

        with patch("archive_mcp.core.retry.time.sleep") as sleep_mock:
            assert client.get("/cards/X") == {"ok": True}

        assert session.request.call_count == 2
        assert sleep_mock.call_count == 1

    def test_network_error_retried(self) -> None:
        client, session = _client(requests.ConnectionError("reset"), _response(200, {"ok": True}))

        with patch("archive_mcp.core.retry.time.sleep"):
            assert client.get("/cards/X") == {"ok": True}

        assert session.request.call_count == 2

    def test_persistent_timeout_becomes_api_error(self) -> None:
        client, session = _client(*[requests.Timeout("slow") for _ in range(4)])

        with patch("archive_mcp.core.retry.time.sleep"):
            with pytest.raises(APIError, match="HTTP request failed"):
                client.get("/cards/X")

        assert session.request.call_count == 4

    def test_retried_responses_are_closed(self) -> None:
        busy = [_response(503), _response(429)]
        final = _response(200, {"ok": True})
        client, session = _client(*busy, final)

        with patch("archive_mcp.core.retry.time.sleep"):
            raw = client.get_raw("/files/report.pdf")

        assert raw is final
        assert session.request.call_args.kwargs["stream"] is True
        for response in busy:
            response.close.assert_called_once_with()
        final.close.assert_not_called()

    def test_last_failed_response_stays_open_for_error_mapping(self) -> None:
        responses = [_response(502, {"error": "bad_gateway"}) for _ in range(4)]
        client, _ = _client(*responses)

        with patch("archive_mcp.core.retry.time.sleep"):
            with pytest.raises(ServerError, match="bad_gateway"):
                client.get("/cards/X")

        for response in responses[:3]:
            response.close.assert_called_once_with()
        responses[3].close.assert_not_called()

    def test_unparseable_success_body(self) -> None:
        response = Mock(status_code=200, text="<html>", content=b"<html>")
        response.json = Mock(side_effect=ValueError("no json"))
        client, _ = _client(response)

        with pytest.raises(APIError, match="Response parse failed"):
            client.get("/cards/X")


class TestPagination:
    def test_paginated_get_normalises_cards(self) -> None:
        client, session = _client(
            _response(200, {"cards": [{"name": "A"}], "total": 3, "next_offset": 1})
        )

        page = client.paginated_get("/cards", limit=500, q="a")

        assert page == {
            "data": [{"name": "A"}],
            "total": 3,
            "limit": 100,
            "offset": 0,
            "next_offset": 1,
        }
        assert session.request.call_args.kwargs["params"] == {"limit": 100, "offset": 0, "q": "a"}

    def test_paginated_get_accepts_bare_list(self) -> None:
        client, _ = _client(_response(200, [{"name": "A"}, {"name": "B"}]))

        page = client.paginated_get("/types")

        assert page["total"] == 2
        assert page["next_offset"] is None

    def test_fetch_all_follows_next_offset(self) -> None:
        client, session = _client(
            _response(200, {"cards": [{"name": "A"}, {"name": "B"}], "next_offset": 2}),
            _response(200, {"cards": [{"name": "C"}], "next_offset": None}),
        )

        items = client.fetch_all("/cards", limit=2)

        assert [item["name"] for item in items] == ["A", "B", "C"]
        assert session.request.call_count == 2

    def test_fetch_all_respects_max_items(self) -> None:
        client, session = _client(
            _response(200, {"cards": [{"name": "A"}, {"name": "B"}], "next_offset": 2}),
            _response(200, {"cards": [{"name": "C"}, {"name": "D"}], "next_offset": 4}),
        )

        items = client.fetch_all("/cards", limit=2, max_items=3)

        assert [item["name"] for item in items] == ["A", "B", "C"]
        assert session.request.call_count == 2

    def test_each_page_stops_on_empty_page(self) -> None:
        client, _ = _client(_response(200, {"cards": [], "next_offset": 10}))

        assert list(client.each_page("/cards")) == []


class TestHealth:
    def test_health_check_is_unauthenticated(self) -> None:
        client, session = _client()
        session.get.return_value = _response(200, {"status": "ok"})

        assert client.health_check() == {"status": "ok"}
        assert session.get.call_args.args[0] == f"{BASE_URL}/health"
        client.credentials.token.assert_not_called()

    def test_ping_failure(self) -> None:
        client, session = _client()
        session.get.return_value = _response(503)

        with pytest.raises(APIError, match="Ping failed"):
            client.ping()
