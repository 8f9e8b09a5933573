"""JSON-RPC method dispatch for MCP messages.

Each request (a message with an ``id``) yields exactly one response envelope
carrying the same ``id`` and either ``result`` or ``error``. Notifications
(no ``id``) yield nothing.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, cast

from archive_mcp.core.errors import APIError
from archive_mcp.mcp_gateway.constants import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    SERVER_NAME,
    SUPPORTED_PROTOCOL_VERSIONS,
)
from archive_mcp.mcp_gateway.tools.helpers import format_api_error
from archive_mcp.mcp_gateway.tools.registry import ToolRegistry

_log = logging.getLogger("archive_mcp.mcp_gateway.dispatch")

SERVER_INSTRUCTIONS = (
    "Tools for reading and editing the archive wiki. Card names are case-sensitive; "
    "compound cards use the full 'Parent+Child' name returned by search_cards."
)


class JsonRpcError(Exception):
    """A protocol-level failure that maps onto a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_error(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def success_envelope(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def error_envelope(
    request_id: Any, code: int, message: str, data: Any | None = None
) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": JsonRpcError(code, message, data).to_error(),
    }


def negotiate_protocol_version(requested: Any) -> str:
    if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return SUPPORTED_PROTOCOL_VERSIONS[0]


def _is_notification(message: dict[str, Any]) -> bool:
    return "id" not in message


class MethodDispatcher:
    """Routes MCP JSON-RPC messages to their handlers."""

    def __init__(
        self,
        tools: ToolRegistry | None = None,
        server_name: str = SERVER_NAME,
        server_version: str = "0.0.0",
    ) -> None:
        self.tools = tools or ToolRegistry()
        self.server_name = server_name
        self.server_version = server_version
        self._methods: dict[str, Callable[[dict[str, Any], str | None], Any]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }

    @property
    def tool_count(self) -> int:
        return len(self.tools)

    def handle(
        self, message: Any, session_id: str | None = None
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Dispatch one message or a batch. Returns None when nothing is owed."""
        if isinstance(message, list):
            return self._handle_batch(cast(list[Any], message), session_id)
        return self._handle_single(message, session_id)

    def _handle_batch(
        self, batch: list[Any], session_id: str | None
    ) -> list[dict[str, Any]] | dict[str, Any] | None:
        if not batch:
            return error_envelope(None, INVALID_REQUEST, "Invalid Request: empty batch")
        responses: list[dict[str, Any]] = []
        for item in batch:
            try:
                response = self._handle_single(item, session_id)
            except Exception as item_error:
                _log.exception("batch item failed session_id=%s", session_id)
                # Only the failing item is answered with an error.
                if _is_notification(item):
                    continue
                response = error_envelope(
                    item.get("id"), INTERNAL_ERROR, "Internal error", str(item_error)
                )
            if response is not None:
                responses.append(response)
        return responses or None

    def _handle_single(self, message: Any, session_id: str | None) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return error_envelope(None, INVALID_REQUEST, "Invalid Request: expected an object")

        body = cast(dict[str, Any], message)
        request_id = body.get("id")
        method = body.get("method")

        if body.get("jsonrpc", "2.0") != "2.0" or not isinstance(method, str):
            if _is_notification(body):
                return None
            return error_envelope(request_id, INVALID_REQUEST, "Invalid Request")

        if method.startswith("notifications/"):
            _log.debug("notification method=%s session_id=%s", method, session_id)
            return None

        params = body.get("params") or {}
        if not isinstance(params, dict):
            if _is_notification(body):
                return None
            return error_envelope(request_id, INVALID_PARAMS, "Invalid params: expected an object")

        handler = self._methods.get(method)
        if handler is None:
            if _is_notification(body):
                return None
            return error_envelope(
                request_id, METHOD_NOT_FOUND, f"Method not found: {method}", {"method": method}
            )

        try:
            result = handler(cast(dict[str, Any], params), session_id)
        except JsonRpcError as e:
            if _is_notification(body):
                return None
            return {"jsonrpc": "2.0", "id": request_id, "error": e.to_error()}

        if _is_notification(body):
            return None
        return success_envelope(request_id, result)

    def _initialize(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        client_info = params.get("clientInfo") or {}
        _log.info(
            "initialize client=%s session_id=%s",
            client_info.get("name", "unknown") if isinstance(client_info, dict) else "unknown",
            session_id,
        )
        return {
            "protocolVersion": negotiate_protocol_version(
                params.get("protocolVersion", PROTOCOL_VERSION)
            ),
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
            "instructions": SERVER_INSTRUCTIONS,
        }

    def _ping(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {}

    def _tools_list(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {"tools": self.tools.list_definitions()}

    def _tools_call(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: missing tool name")

        tool = self.tools.get(name)
        if tool is None:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Unknown tool: {name}",
                {"available_tools": self.tools.names()},
            )

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: arguments must be an object")

        missing = [key for key in tool.required_arguments if arguments.get(key) in (None, "")]
        if missing:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Missing required argument(s) for {name}: {', '.join(missing)}",
                {"missing": missing},
            )

        _log.info(
            "tool_call tool=%s session_id=%s",
            name,
            session_id or "(none)",
            extra={"tool": name, "session_id": session_id},
        )
        try:
            payload = tool.handler(cast(dict[str, Any], arguments))
        except APIError as e:
            _log.warning("tool_call failed tool=%s error=%s", name, e)
            target = arguments.get("name")
            text = format_api_error(e, operation=name, target=target if isinstance(target, str) else None)
            return {
                "content": [{"type": "text", "text": text}],
                "isError": True,
            }

        return {
            "content": [{"type": "text", "text": json.dumps(payload, default=str)}],
            "isError": False,
        }
