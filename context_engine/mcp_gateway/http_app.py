"""HTTP transport for the ContextEngine MCP gateway.

One FastAPI application serves:

- ``/mcp``: streamable HTTP, a fresh MCP server per request, no session kept;
- ``/sse`` + ``/messages``: legacy event-stream sessions tracked in a SessionStore;
- ``/ping``: liveness probe.
"""

import functools
import logging
from collections.abc import Callable
from typing import Any

import anyio
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from mcp.server import Server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp.types import JSONRPCMessage
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from context_engine import __version__
from context_engine.core.config import ApiClientConfig, GatewayConfig
from context_engine.mcp_gateway.auth import ClientIdentity, identity_from_scope, resolve_server_url
from context_engine.mcp_gateway.constants import (
    CORS_HEADERS,
    MCP_PATH,
    MESSAGES_PATH,
    PING_PATH,
    SESSION_ID_PARAM,
    SSE_PATH,
)
from context_engine.mcp_gateway.server import create_server
from context_engine.mcp_gateway.session import SessionStore, SseSession

_gateway_log = logging.getLogger("context_engine.mcp_gateway.http")

ServerFactory = Callable[[ClientIdentity], Server]


def _text_response(status_code: int, message: str) -> Response:
    return PlainTextResponse(message, status_code=status_code)


class CorsMiddleware:
    """Permissive CORS headers on every response; OPTIONS answered directly."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            await Response(status_code=200, headers=CORS_HEADERS)(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in CORS_HEADERS.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


class ErrorBoundaryMiddleware:
    """Turn uncaught exceptions into a 500 unless the response already started."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception:
            _gateway_log.exception(
                "Error handling request",
                extra={"path": scope.get("path"), "method": scope.get("method")},
            )
            if not response_started:
                await _text_response(500, "Internal Server Error")(scope, receive, send)


class StreamableHttpEndpoint:
    """``/mcp``: handle exactly one request with a server bound to its headers."""

    def __init__(self, server_factory: ServerFactory, server_url: str) -> None:
        self.server_factory = server_factory
        self.server_url = server_url

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        identity = identity_from_scope(scope, self.server_url)
        session_manager = StreamableHTTPSessionManager(
            app=self.server_factory(identity),
            json_response=True,
            stateless=True,
        )
        async with session_manager.run():
            await session_manager.handle_request(scope, receive, send)


class SseEndpoint:
    """``GET /sse``: open a long-lived session and stream server messages."""

    def __init__(self, server_factory: ServerFactory, server_url: str, sessions: SessionStore) -> None:
        self.server_factory = server_factory
        self.server_url = server_url
        self.sessions = sessions

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["method"] != "GET":
            await _text_response(404, "Not found")(scope, receive, send)
            return

        identity = identity_from_scope(scope, self.server_url)
        session = self.sessions.create_session(identity)
        server = self.server_factory(identity)
        _gateway_log.info(
            "sse_session_open session_id=%s",
            session.session_id,
            extra={"session_id": session.session_id, "client_ip": identity.client_ip},
        )

        sse_stream_writer, sse_stream_reader = anyio.create_memory_object_stream[dict[str, Any]](0)

        async def sse_writer() -> None:
            async with sse_stream_writer, session.write_stream_reader:
                await sse_stream_writer.send(
                    {
                        "event": "endpoint",
                        "data": f"{MESSAGES_PATH}?{SESSION_ID_PARAM}={session.session_id}",
                    }
                )
                async for session_message in session.write_stream_reader:
                    await sse_stream_writer.send(
                        {
                            "event": "message",
                            "data": session_message.message.model_dump_json(
                                by_alias=True, exclude_none=True
                            ),
                        }
                    )

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._run_server, server, session)
                response = EventSourceResponse(
                    content=sse_stream_reader, data_sender_callable=sse_writer
                )
                await response(scope, receive, send)
                # In-flight tool calls finish on their own; their output is dropped.
                await session.aclose()
        finally:
            self.sessions.close_session(session.session_id)
            _gateway_log.info(
                "sse_session_closed session_id=%s",
                session.session_id,
                extra={"session_id": session.session_id},
            )

    @staticmethod
    async def _run_server(server: Server, session: SseSession) -> None:
        try:
            await server.run(
                session.read_stream,
                session.write_stream,
                server.create_initialization_options(),
            )
        except Exception as e:
            _gateway_log.warning(
                "sse_session_server_stopped session_id=%s error=%s",
                session.session_id,
                str(e),
                extra={"session_id": session.session_id, "error": str(e)},
            )


class MessagesEndpoint:
    """``POST /messages?sessionId=...``: forward a client message into its session."""

    def __init__(self, sessions: SessionStore) -> None:
        self.sessions = sessions

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["method"] != "POST":
            await _text_response(404, "Not found")(scope, receive, send)
            return

        request = Request(scope, receive)
        session_id = request.query_params.get(SESSION_ID_PARAM, "")
        if not session_id:
            await _text_response(400, "Missing sessionId parameter")(scope, receive, send)
            return

        session = self.sessions.get_session(session_id)
        if session is None:
            await _text_response(400, f"No transport found for sessionId: {session_id}")(
                scope, receive, send
            )
            return

        body = await request.body()
        try:
            message = JSONRPCMessage.model_validate_json(body)
        except ValidationError:
            _gateway_log.warning(
                "Could not parse message", extra={"session_id": session_id}
            )
            await _text_response(400, "Could not parse message")(scope, receive, send)
            return

        await _text_response(202, "Accepted")(scope, receive, send)
        await session.deliver(message)


async def _not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if exc.status_code in (404, 405):
        return _text_response(404, "Not found")
    return _text_response(exc.status_code, str(exc.detail))


def create_app(
    config: GatewayConfig,
    api_config: ApiClientConfig | None = None,
    sessions: SessionStore | None = None,
    server_factory: ServerFactory | None = None,
) -> FastAPI:
    """Build the HTTP application.

    ``sessions`` and ``server_factory`` can be injected; by default a new
    SessionStore is created and each connection gets ``create_server``.
    """
    server_url = resolve_server_url(config.server_url)
    session_store = sessions if sessions is not None else SessionStore()
    factory = server_factory or functools.partial(create_server, api_config=api_config)

    app = FastAPI(title="ContextEngine MCP Gateway", version=__version__)

    # Last added is outermost: CORS wraps the error boundary.
    app.add_middleware(ErrorBoundaryMiddleware)
    app.add_middleware(CorsMiddleware)
    app.add_exception_handler(StarletteHTTPException, _not_found_handler)

    app.add_route(MCP_PATH, StreamableHttpEndpoint(factory, server_url), include_in_schema=False)
    app.add_route(SSE_PATH, SseEndpoint(factory, server_url, session_store), include_in_schema=False)
    app.add_route(MESSAGES_PATH, MessagesEndpoint(session_store), include_in_schema=False)

    @app.get(PING_PATH, response_class=PlainTextResponse)
    async def ping() -> str:
        """Liveness probe."""
        return "pong"

    return app
