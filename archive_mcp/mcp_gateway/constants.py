"""Constants and limits for the archive MCP gateway."""

SERVER_NAME = "magi-archive-mcp"

PROTOCOL_VERSION = "2024-11-05"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

PROTOCOL_VERSION_HEADER = "MCP-Protocol-Version"
SESSION_HEADER = "Mcp-Session-Id"
LEGACY_SESSION_QUERY_PARAM = "session_id"

ALLOWED_HOSTS = (
    "127.0.0.1",
    "127.0.0.1:3002",
    "localhost",
    "localhost:3002",
    "mcp.magi-agi.org",
)

KEEPALIVE_INTERVAL_SECONDS = 15.0
SESSION_TTL_SECONDS = 86400
MAX_SESSIONS = 10000

# Placeholder credential for the authless /token flow.
STATIC_ACCESS_TOKEN = "magi-archive-authless"
STATIC_TOKEN_EXPIRES_IN = 31536000
STATIC_CLIENT_ID = "magi-archive-public-client"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SESSION_NOT_FOUND = -32001
