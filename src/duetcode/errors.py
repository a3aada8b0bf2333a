"""
Exception taxonomy for the duetcode server.

Every failure that can be reported back to a client derives from `DuetError`,
which optionally carries the title of the request that caused it. The request
router turns these into `error` replies; only `TransportError` raised while
broadcasting to other participants is swallowed per target.
"""
from __future__ import annotations

from typing import Optional


class DuetError(Exception):
    """
    Base class for errors surfaced to the originating connection.

    Attributes:
        message: Human-readable reason sent to the client.
        request_title: Title of the originating request, if known.
    """

    def __init__(self, message: str, *, request_title: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.request_title = request_title


class DecodeError(DuetError):
    """An inbound frame is not valid JSON, not an object, or fails validation."""


class UnknownMessageType(DuetError):
    """An inbound frame names a `type` the server does not handle."""

    def __init__(self, message_type: str) -> None:
        super().__init__("Unknown message type", request_title=message_type)
        self.message_type = message_type


class SessionNotFound(DuetError):
    """A join or update referenced a session id that is not live."""

    def __init__(self, session_id: str, *, message: str = "Session not found", request_title: Optional[str] = None) -> None:
        super().__init__(message, request_title=request_title)
        self.session_id = session_id


class GenerationFailure(DuetError):
    """The generation collaborator returned the error sentinel or raised."""


class TransportError(DuetError):
    """Sending to or receiving from a specific connection failed."""

    def __init__(self, connection_id: str, reason: str) -> None:
        super().__init__(f"Transport failure on {connection_id}: {reason}")
        self.connection_id = connection_id


__all__ = [
    "DuetError",
    "DecodeError",
    "UnknownMessageType",
    "SessionNotFound",
    "GenerationFailure",
    "TransportError",
]
