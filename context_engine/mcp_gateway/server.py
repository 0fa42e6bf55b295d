"""ContextEngine MCP Gateway Server - stdio and HTTP entry points."""

import asyncio
import errno
import logging
import socket
import sys
from collections.abc import Sequence
from typing import Any

import uvicorn
from dotenv import load_dotenv
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from context_engine import __version__
from context_engine.core.config import ApiClientConfig, GatewayConfig, parse_cli_args
from context_engine.core.errors import TransportError
from context_engine.logger import configure_logging
from context_engine.mcp_gateway.auth import ClientIdentity, resolve_server_url
from context_engine.mcp_gateway.constants import (
    MAX_PORT_ATTEMPTS,
    MCP_PATH,
    SERVER_INSTRUCTIONS,
    SERVER_NAME,
    SSE_PATH,
)
from context_engine.mcp_gateway.tools import EngineTools

_gateway_log = logging.getLogger("context_engine.mcp_gateway")


def create_server(identity: ClientIdentity, api_config: ApiClientConfig | None = None) -> Server:
    """Build a fresh MCP server whose tools act on behalf of ``identity``.

    A new server (and tool registry) is created for every connection so that
    no state is shared between callers.
    """
    server: Server = Server(SERVER_NAME, version=__version__, instructions=SERVER_INSTRUCTIONS)
    tools = EngineTools(identity, api_config)

    @server.list_tools()
    async def handle_list_tools() -> list[Tool]:
        return await tools.list_tools()

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        return await tools.call_tool(name, arguments)

    return server


def stdio_identity(config: GatewayConfig) -> ClientIdentity:
    """stdio has no network peer: identity comes from CLI flags and the environment."""
    return ClientIdentity(
        client_ip=None,
        api_key=config.api_key,
        server_url=resolve_server_url(config.server_url),
    )


async def run_stdio(config: GatewayConfig, api_config: ApiClientConfig) -> None:
    """Serve a single MCP connection over stdin/stdout for the process lifetime."""
    server = create_server(stdio_identity(config), api_config)
    async with stdio_server() as (read_stream, write_stream):
        _gateway_log.info("ContextEngine Documentation MCP Server running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


def bind_with_fallback(
    host: str,
    start_port: int,
    max_attempts: int = MAX_PORT_ATTEMPTS,
) -> socket.socket:
    """Bind a listening socket on ``start_port`` or the next free port after it.

    Raises:
        TransportError: if every port in range is in use or binding fails otherwise.
    """
    for port in range(start_port, start_port + max_attempts):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
            sock.listen()
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                _gateway_log.warning("Port %d is in use, trying port %d...", port, port + 1)
                continue
            raise TransportError(f"Failed to start server: {e}") from e
        return sock

    last_port = start_port + max_attempts - 1
    raise TransportError(f"Failed to start server: no free port in range {start_port}-{last_port}")


def run_http(config: GatewayConfig, api_config: ApiClientConfig) -> None:
    """Serve /mcp, /sse, /messages and /ping on one listening socket."""
    from context_engine.mcp_gateway.http_app import create_app

    app = create_app(config, api_config)
    sock = bind_with_fallback(config.host, config.port)
    port = sock.getsockname()[1]
    _gateway_log.info(
        "ContextEngine Documentation MCP Server running on HTTP at "
        "http://localhost:%d%s with SSE endpoint at %s",
        port,
        MCP_PATH,
        SSE_PATH,
    )
    uvicorn_server = uvicorn.Server(uvicorn.Config(app, log_level="info"))
    uvicorn_server.run(sockets=[sock])


def main(argv: Sequence[str] | None = None) -> None:
    load_dotenv()
    configure_logging()
    config = parse_cli_args(argv)
    api_config = ApiClientConfig.from_env()
    if api_config.proxy_url:
        _gateway_log.info("Routing API calls through proxy", extra={"proxy_url": api_config.proxy_url})

    try:
        if config.transport == "http":
            run_http(config, api_config)
        else:
            asyncio.run(run_stdio(config, api_config))
    except TransportError as e:
        _gateway_log.error(str(e))
        sys.exit(1)
    except Exception:
        _gateway_log.exception("Fatal error in main()")
        sys.exit(1)


if __name__ == "__main__":
    main()
