"""
This module owns the lifecycle of client WebSocket connections.

Each accepted socket is wrapped in a `Connection`, which records the session it
is bound to and its ready state. The `ConnectionManager` reads frames in arrival
order and hands each one to the request router as its own task, so a slow
generation never blocks later frames and replies may complete out of order.
When a socket closes, the manager runs the single cleanup path exactly once:
the connection leaves its session (deleting the session if it was the last
participant) and is unregistered.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

from .errors import TransportError
from .messages import OutboundMessage, encode_message

if TYPE_CHECKING:
    from .router import RequestRouter
    from .sessions import SessionStore

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """
    A live duplex channel to one client.

    Attributes:
        id: Unique identity of the connection.
        session_id: Session the connection is bound to, if any.
        ready_state: Whether the channel can still carry messages.
    """

    def __init__(self, websocket: WebSocket, *, connection_id: Optional[str] = None) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.websocket = websocket
        self.session_id: Optional[str] = None
        self.ready_state = ConnectionState.OPEN

    @property
    def is_open(self) -> bool:
        return self.ready_state is ConnectionState.OPEN

    async def send(self, message: OutboundMessage) -> None:
        """
        Sends one outbound message.

        Raises:
            TransportError: The connection is not open or the write failed.
        """
        if not self.is_open:
            raise TransportError(self.id, f"connection is {self.ready_state.value}")
        try:
            await self.websocket.send_text(encode_message(message))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise TransportError(self.id, str(exc) or type(exc).__name__) from exc

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, session_id={self.session_id!r}, state={self.ready_state.value})"


async def broadcast(targets: Iterable[Connection], message: OutboundMessage) -> int:
    """
    Sends `message` to every target, skipping targets whose send fails.

    Returns:
        The number of targets that received the message.
    """
    delivered = 0
    for target in list(targets):
        try:
            await target.send(message)
        except TransportError as exc:
            LOGGER.warning("Broadcast to %s failed: %s", target.id, exc.message)
            continue
        delivered += 1
    return delivered


class ConnectionManager:
    """
    Accepts sockets, pumps their frames into the router, and cleans up on close.

    Attributes:
        router: Dispatcher for decoded frames.
        sessions: Session registry, used to release a closed connection's
                  membership.
    """

    def __init__(self, router: "RequestRouter", sessions: "SessionStore") -> None:
        self.router = router
        self.sessions = sessions
        self._connections: Dict[str, Connection] = {}
        self._inflight: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._connections)

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def open(self, websocket: WebSocket) -> Connection:
        connection = Connection(websocket)
        self._connections[connection.id] = connection
        LOGGER.info("Client connected: %s", connection.id)
        return connection

    async def serve(self, websocket: WebSocket) -> None:
        """Runs one client's connection from accept to close."""
        await websocket.accept()
        connection = self.open(websocket)
        try:
            while True:
                event = await websocket.receive()
                if event["type"] == "websocket.disconnect":
                    break
                raw = event.get("text")
                if raw is None:
                    raw = event.get("bytes") or b""
                self._spawn(connection, raw)
        except WebSocketDisconnect:
            pass
        except (RuntimeError, OSError) as exc:
            LOGGER.warning("WebSocket error on %s: %s", connection.id, exc)
        finally:
            self.close(connection)

    def _spawn(self, connection: Connection, raw: str | bytes) -> None:
        task = asyncio.create_task(self.router.handle_frame(connection, raw))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def close(self, connection: Connection) -> None:
        """
        Releases everything the connection holds. Later calls are no-ops.

        Frames already being handled run to completion; their replies are
        dropped because the connection is no longer open.
        """
        if connection.ready_state is ConnectionState.CLOSED:
            return
        connection.ready_state = ConnectionState.CLOSING
        if connection.session_id:
            self.sessions.leave(connection.session_id, connection)
        self.router.forget(connection)
        self._connections.pop(connection.id, None)
        connection.ready_state = ConnectionState.CLOSED
        LOGGER.info("Client disconnected: %s", connection.id)

    async def shutdown(self) -> None:
        """Cancels in-flight handlers and closes every connection."""
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for connection in list(self._connections.values()):
            self.close(connection)


__all__ = ["Connection", "ConnectionManager", "ConnectionState", "broadcast"]
