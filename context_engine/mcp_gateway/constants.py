"""Constants for the ContextEngine MCP gateway."""

SERVER_NAME = "ContextEngine"
SERVER_INSTRUCTIONS = "Use this server to start the context engine."

MCP_PATH = "/mcp"
SSE_PATH = "/sse"
MESSAGES_PATH = "/messages"
PING_PATH = "/ping"
SESSION_ID_PARAM = "sessionId"

MAX_PORT_ATTEMPTS = 10

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS,DELETE",
    "Access-Control-Allow-Headers": (
        "Content-Type, MCP-Session-Id, MCP-Protocol-Version, X-ContextEngine-API-Key, "
        "ContextEngine-API-Key, X-API-Key, Authorization"
    ),
    "Access-Control-Expose-Headers": "MCP-Session-Id",
}
