"""ContextEngine MCP Gateway - stdio and HTTP transports for the start-engine tool."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from context_engine.mcp_gateway.server import create_server


def __getattr__(name: str) -> Any:
    if name == "create_server":
        from context_engine.mcp_gateway.server import create_server

        return create_server
    raise AttributeError(f"module 'context_engine.mcp_gateway' has no attribute '{name}'")


__all__ = ["create_server"]
