"""SSE session management for the ContextEngine MCP gateway."""

import uuid
from dataclasses import dataclass

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage

from context_engine.mcp_gateway.auth import ClientIdentity


@dataclass
class SseSession:
    """One live event-stream connection and the streams feeding its MCP server."""

    session_id: str
    identity: ClientIdentity
    read_stream_writer: MemoryObjectSendStream[SessionMessage | Exception]
    read_stream: MemoryObjectReceiveStream[SessionMessage | Exception]
    write_stream: MemoryObjectSendStream[SessionMessage]
    write_stream_reader: MemoryObjectReceiveStream[SessionMessage]

    @classmethod
    def open(cls, identity: ClientIdentity, buffer_size: int = 0) -> "SseSession":
        read_stream_writer, read_stream = anyio.create_memory_object_stream[
            SessionMessage | Exception
        ](buffer_size)
        write_stream, write_stream_reader = anyio.create_memory_object_stream[SessionMessage](
            buffer_size
        )
        return cls(
            session_id=uuid.uuid4().hex,
            identity=identity,
            read_stream_writer=read_stream_writer,
            read_stream=read_stream,
            write_stream=write_stream,
            write_stream_reader=write_stream_reader,
        )

    async def deliver(self, message: JSONRPCMessage) -> None:
        """Hand a client-posted message to the session's MCP server."""
        await self.read_stream_writer.send(SessionMessage(message))

    async def aclose(self) -> None:
        await self.read_stream_writer.aclose()
        await self.write_stream_reader.aclose()


class SessionStore:
    """Live SSE sessions keyed by session ID.

    Only touched from the event loop, so no locking. Entries must be closed
    when their connection ends or the table grows without bound.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SseSession] = {}

    def create_session(self, identity: ClientIdentity) -> SseSession:
        session = SseSession.open(identity)
        self.add_session(session)
        return session

    def add_session(self, session: SseSession) -> None:
        self._sessions[session.session_id] = session

    def get_session(self, session_id: str) -> SseSession | None:
        return self._sessions.get(session_id)

    def close_session(self, session_id: str) -> bool:
        """Remove a session. Returns False if it was already gone."""
        return self._sessions.pop(session_id, None) is not None

    def list_session_ids(self) -> list[str]:
        return sorted(self._sessions.keys())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
