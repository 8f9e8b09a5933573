"""Archive MCP Gateway Server - HTTP front end for both MCP transports.

Serves JSON-RPC MCP messages over the legacy SSE transport (session id in
the ``session_id`` query string, follow-ups POSTed to ``/messages``) and the
Streamable HTTP transport (session id in the ``Mcp-Session-Id`` header) from
one FastAPI application. Both transports funnel into the same dispatch core.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from archive_mcp import __version__
from archive_mcp.core.config import ArchiveConfig
from archive_mcp.core.errors import ConfigurationError
from archive_mcp.mcp_gateway.constants import (
    ALLOWED_HOSTS,
    INTERNAL_ERROR,
    KEEPALIVE_INTERVAL_SECONDS,
    LEGACY_SESSION_QUERY_PARAM,
    MAX_SESSIONS,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    PROTOCOL_VERSION_HEADER,
    SERVER_NAME,
    SESSION_HEADER,
    SESSION_NOT_FOUND,
    SESSION_TTL_SECONDS,
    STATIC_ACCESS_TOKEN,
    STATIC_CLIENT_ID,
    STATIC_TOKEN_EXPIRES_IN,
)
from archive_mcp.mcp_gateway.dispatcher import MethodDispatcher, error_envelope
from archive_mcp.mcp_gateway.session import SessionRegistry
from archive_mcp.mcp_gateway.stream import StreamEmitter, endpoint_for

_gateway_log = logging.getLogger("archive_mcp.mcp_gateway")

MESSAGE_PATHS = ("/", "/sse", "/sse/", "/message", "/messages")
LEGACY_MESSAGE_PATH = "/messages"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@dataclass(frozen=True)
class HttpServerConfig:
    host: str = "0.0.0.0"
    port: int = 3002
    allowed_hosts: tuple[str, ...] = ALLOWED_HOSTS
    keepalive_interval: float = KEEPALIVE_INTERVAL_SECONDS
    session_ttl: float | None = SESSION_TTL_SECONDS
    max_sessions: int | None = MAX_SESSIONS
    log_level: str = "info"


class HostAuthorizationMiddleware:
    """Rejects requests whose Host header is not allowlisted, before routing."""

    def __init__(self, app: ASGIApp, allowed_hosts: tuple[str, ...]) -> None:
        self.app = app
        self.allowed_hosts = frozenset(allowed_hosts)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        host = Headers(scope=scope).get("host")
        if not host and scope.get("server"):
            host = scope["server"][0]

        if host in self.allowed_hosts:
            await self.app(scope, receive, send)
            return

        _gateway_log.warning("rejected request for host=%s path=%s", host, scope.get("path"))
        response = PlainTextResponse(f"Forbidden: Host '{host}' not allowed", status_code=403)
        await response(scope, receive, send)


class ProtocolGateway:
    """Holds the state shared by all requests: sessions, dispatcher, shutdown signal."""

    def __init__(
        self,
        dispatcher: MethodDispatcher,
        registry: SessionRegistry | None = None,
        config: HttpServerConfig | None = None,
    ) -> None:
        self.config = config or HttpServerConfig()
        self.dispatcher = dispatcher
        self.registry = registry or SessionRegistry(
            ttl=self.config.session_ttl,
            max_sessions=self.config.max_sessions,
        )
        self.stop_event = asyncio.Event()

    @staticmethod
    def incoming_session_id(request: Request) -> str | None:
        if request.url.path == LEGACY_MESSAGE_PATH:
            return request.query_params.get(LEGACY_SESSION_QUERY_PARAM)
        return request.headers.get(SESSION_HEADER)

    def resolve_session(self, request: Request) -> str:
        """Reuse the client's session id when known, otherwise mint and record one."""
        return self.registry.get_or_create(self.incoming_session_id(request))

    def peek_session(self, request: Request) -> str:
        """Echo a known session id, otherwise mint one without recording it."""
        incoming = self.incoming_session_id(request)
        if self.registry.exists(incoming):
            return incoming
        return str(uuid.uuid4())

    @staticmethod
    def protocol_headers(session_id: str) -> dict[str, str]:
        return {PROTOCOL_VERSION_HEADER: PROTOCOL_VERSION, SESSION_HEADER: session_id}

    def json_response(
        self, payload: Any, session_id: str, status_code: int = 200
    ) -> JSONResponse:
        return JSONResponse(
            payload, status_code=status_code, headers=self.protocol_headers(session_id)
        )

    def open_stream(self, request: Request, session_id: str, legacy: bool) -> StreamingResponse:
        emitter = StreamEmitter(
            session_id,
            endpoint_for(session_id, legacy=legacy),
            interval=self.config.keepalive_interval,
            stop_event=self.stop_event,
            is_disconnected=request.is_disconnected,
        )
        return StreamingResponse(
            emitter.frames(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, **self.protocol_headers(session_id)},
        )

    async def handle_message(self, request: Request) -> Response:
        """Parse, validate and dispatch one POSTed JSON-RPC message (or batch)."""
        legacy = request.url.path == LEGACY_MESSAGE_PATH
        requested = self.incoming_session_id(request)
        # A rejected legacy post must leave the registry untouched.
        known = self.registry.exists(requested)
        if legacy and not known:
            session_id = self.peek_session(request)
        else:
            session_id = self.resolve_session(request)

        raw = await request.body()
        try:
            body = json.loads(raw)
        except ValueError as e:
            return self.json_response(
                error_envelope(None, PARSE_ERROR, "Parse error", str(e)),
                session_id,
                status_code=400,
            )

        if legacy and not known:
            return self.json_response(
                error_envelope(
                    None,
                    SESSION_NOT_FOUND,
                    "Session not found",
                    {"session_id": requested},
                ),
                session_id,
                status_code=404,
            )

        try:
            result = await run_in_threadpool(self.dispatcher.handle, body, session_id)
        except Exception as e:
            _gateway_log.exception("dispatch failed session_id=%s", session_id)
            request_id = body.get("id") if isinstance(body, dict) else None
            return self.json_response(
                error_envelope(request_id, INTERNAL_ERROR, "Internal error", str(e)),
                session_id,
                status_code=500,
            )

        if result is None:
            return Response(status_code=202, headers=self.protocol_headers(session_id))
        return self.json_response(result, session_id, status_code=202 if legacy else 200)

    def close(self) -> None:
        """Signal every open stream to finish."""
        self.stop_event.set()


def build_app(gateway: ProtocolGateway) -> FastAPI:
    """Create the FastAPI application serving ``gateway``."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        gateway.close()

    app = FastAPI(
        title="Archive MCP Gateway",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
        lifespan=lifespan,
    )
    app.add_middleware(HostAuthorizationMiddleware, allowed_hosts=gateway.config.allowed_hosts)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
        # Unknown paths and unsupported methods both get the bare 404.
        if exc.status_code in (404, 405):
            return PlainTextResponse("Not Found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.get("/health")
    async def health(request: Request) -> Response:
        session_id = gateway.peek_session(request)
        return gateway.json_response(
            {
                "status": "healthy",
                "version": __version__,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            session_id,
        )

    @app.get("/")
    async def root(request: Request) -> Response:
        if "text/event-stream" in request.headers.get("accept", ""):
            return gateway.open_stream(request, gateway.resolve_session(request), legacy=False)
        session_id = gateway.peek_session(request)
        return gateway.json_response(
            {
                "name": SERVER_NAME,
                "version": __version__,
                "protocol": "mcp",
                "protocolVersion": PROTOCOL_VERSION,
                "transports": ["sse", "streamable-http"],
                "endpoints": {
                    "health": "/health",
                    "sse": "/sse",
                    "message": "/message",
                    "messages": LEGACY_MESSAGE_PATH,
                },
                "tools_count": gateway.dispatcher.tool_count,
            },
            session_id,
        )

    @app.get("/sse")
    @app.get("/sse/")
    async def sse_stream(request: Request) -> Response:
        session_id = gateway.resolve_session(request)
        return gateway.open_stream(request, session_id, legacy=True)

    @app.delete("/sse")
    @app.delete("/sse/")
    async def sse_terminate(request: Request) -> Response:
        session_id = gateway.peek_session(request)
        gateway.registry.delete(session_id)
        return gateway.json_response({"status": "closed", "session_id": session_id}, session_id)

    for path in MESSAGE_PATHS:
        app.add_api_route(path, _message_route(gateway), methods=["POST"])

    @app.get("/.well-known/oauth-authorization-server")
    async def oauth_authorization_server(request: Request) -> Response:
        """Discovery metadata for clients that insist on OAuth; no flow is enforced."""
        session_id = gateway.peek_session(request)
        base = str(request.base_url).rstrip("/")
        return gateway.json_response(
            {
                "issuer": base,
                "token_endpoint": f"{base}/token",
                "registration_endpoint": f"{base}/register",
                "response_types_supported": ["token"],
                "grant_types_supported": ["client_credentials"],
                "token_endpoint_auth_methods_supported": ["none"],
            },
            session_id,
        )

    @app.post("/register")
    async def register_client(request: Request) -> Response:
        session_id = gateway.peek_session(request)
        metadata = await _optional_json(request)
        return gateway.json_response(
            {
                "client_id": STATIC_CLIENT_ID,
                "client_id_issued_at": int(time.time()),
                "client_name": metadata.get("client_name", "MCP Client"),
                "redirect_uris": metadata.get("redirect_uris", []),
                "grant_types": ["client_credentials"],
                "token_endpoint_auth_method": "none",
            },
            session_id,
            status_code=201,
        )

    @app.post("/token")
    async def issue_token(request: Request) -> Response:
        session_id = gateway.peek_session(request)
        return gateway.json_response(
            {
                "access_token": STATIC_ACCESS_TOKEN,
                "token_type": "Bearer",
                "expires_in": STATIC_TOKEN_EXPIRES_IN,
            },
            session_id,
        )

    return app


def _message_route(gateway: ProtocolGateway) -> Any:
    async def message_endpoint(request: Request) -> Response:
        return await gateway.handle_message(request)

    return message_endpoint


async def _optional_json(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def create_gateway(
    http_config: HttpServerConfig,
    archive_config: ArchiveConfig | None = None,
) -> ProtocolGateway:
    """Wire the archive client, tools and dispatcher into a gateway."""
    from archive_mcp.clients.archive_api import ArchiveClient
    from archive_mcp.mcp_gateway.tools import build_default_tools

    client = ArchiveClient(archive_config or ArchiveConfig.from_env())
    dispatcher = MethodDispatcher(
        build_default_tools(client),
        server_name=SERVER_NAME,
        server_version=__version__,
    )
    return ProtocolGateway(dispatcher, config=http_config)


# ============================================================================
# Main Entry Point
# ============================================================================


def main_http(config: HttpServerConfig, archive_config: ArchiveConfig | None = None) -> None:
    """Run the gateway under uvicorn."""
    try:
        gateway = create_gateway(config, archive_config)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    app = build_app(gateway)
    _gateway_log.info(
        "Starting archive MCP gateway on %s:%s (%d tools, allowed hosts: %s)",
        config.host,
        config.port,
        gateway.dispatcher.tool_count,
        ", ".join(config.allowed_hosts),
    )
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level,
        timeout_graceful_shutdown=5,
    )


def _optional_number(value: str | None, cast_type: type) -> Any:
    if value is None or value == "" or value.lower() == "none":
        return None
    return cast_type(value)


def parse_args(argv: list[str] | None = None) -> HttpServerConfig:
    parser = argparse.ArgumentParser(description="Archive MCP Gateway Server")
    parser.add_argument(
        "--host", default=os.getenv("MCP_GATEWAY_HOST", "0.0.0.0"), help="HTTP server host"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("MCP_GATEWAY_PORT", "3002")),
        help="HTTP server port",
    )
    parser.add_argument(
        "--allowed-host",
        action="append",
        dest="allowed_hosts",
        help="Additional Host header value to accept (repeatable)",
    )
    parser.add_argument(
        "--keepalive-interval",
        type=float,
        default=float(os.getenv("MCP_KEEPALIVE_INTERVAL", str(KEEPALIVE_INTERVAL_SECONDS))),
        help="Seconds between SSE keep-alive frames",
    )
    parser.add_argument(
        "--session-ttl",
        default=os.getenv("MCP_SESSION_TTL", str(SESSION_TTL_SECONDS)),
        help="Idle seconds before a session is dropped ('none' disables expiry)",
    )
    parser.add_argument(
        "--max-sessions",
        default=os.getenv("MCP_MAX_SESSIONS", str(MAX_SESSIONS)),
        help="Maximum tracked sessions ('none' disables the cap)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("MCP_LOG_LEVEL", "info"),
        choices=["critical", "error", "warning", "info", "debug"],
    )
    args = parser.parse_args(argv)

    return HttpServerConfig(
        host=args.host,
        port=args.port,
        allowed_hosts=ALLOWED_HOSTS + tuple(args.allowed_hosts or ()),
        keepalive_interval=args.keepalive_interval,
        session_ttl=_optional_number(args.session_ttl, float),
        max_sessions=_optional_number(args.max_sessions, int),
        log_level=args.log_level,
    )


def main(argv: list[str] | None = None) -> None:
    config = parse_args(argv)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    main_http(config)


if __name__ == "__main__":
    main()
