"""
This module holds the in-memory registry of collaborative editing sessions.

A session is a shared code buffer plus the set of connections currently editing
it. The `SessionStore` owns the lifecycle: sessions are created with a single
participant, gain participants through `join`, have their buffer overwritten
(last writer wins) through `update`, and disappear the moment their last
participant leaves. Nothing is persisted; a process restart loses every
session.

The store is driven from a single asyncio event loop and every operation here is
synchronous, so each read-modify step is atomic with respect to other handlers.
"""
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from .errors import SessionNotFound
from .messages import DEFAULT_COLLAB_CODE

LOGGER = logging.getLogger(__name__)

SESSION_ID_ALPHABET = string.digits + string.ascii_lowercase
SESSION_ID_LENGTH = 9
MAX_ID_ATTEMPTS = 16


class Participant(Protocol):
    """The view of a connection the store needs: identity and liveness."""

    id: str

    @property
    def is_open(self) -> bool: ...


@dataclass
class Session:
    """
    A collaborative editing context.

    Attributes:
        session_id: Short printable token identifying the session.
        code: Current shared buffer.
        participants: Connections bound to the session, keyed by identity.
    """

    session_id: str
    code: str
    participants: Dict[str, Participant] = field(default_factory=dict)


def generate_session_id(length: int = SESSION_ID_LENGTH) -> str:
    """Returns a random lowercase base-36 token from the OS CSPRNG."""
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(length))


class SessionStore:
    """
    Registry of live collaboration sessions.

    Attributes:
        id_length: Length of generated session tokens.
    """

    def __init__(self, *, id_length: int = SESSION_ID_LENGTH, id_factory=None) -> None:
        self.id_length = id_length
        self._id_factory = id_factory or generate_session_id
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def _new_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory(self.id_length)
            if candidate not in self._sessions:
                return candidate
            LOGGER.warning("Session id collision on %s; retrying", candidate)
        raise RuntimeError("Unable to allocate a unique session id")

    def create(self, initial_code: Optional[str], connection: Participant) -> str:
        """
        Creates a session with `connection` as its only participant.

        Args:
            initial_code: Starting buffer; the default banner is used when empty.
            connection: The creating connection.

        Returns:
            The new session id, unique among live sessions.
        """
        session_id = self._new_id()
        self._sessions[session_id] = Session(
            session_id=session_id,
            code=initial_code or DEFAULT_COLLAB_CODE,
            participants={connection.id: connection},
        )
        LOGGER.info("Session created: %s", session_id)
        return session_id

    def join(self, session_id: str, connection: Participant) -> str:
        """
        Adds `connection` to an existing session.

        Returns:
            The session's current buffer.

        Raises:
            SessionNotFound: The id is unknown or the session was cleaned up.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id, message="Invalid session ID")
        session.participants[connection.id] = connection
        LOGGER.info("Connection %s joined session %s", connection.id, session_id)
        return session.code

    def update(self, session_id: str, connection: Participant, code: str) -> List[Participant]:
        """
        Overwrites the session buffer and selects who should hear about it.

        Returns:
            Every other participant whose connection is still open. Closed
            participants are skipped here and pruned by `leave` on disconnect.

        Raises:
            SessionNotFound: The id is unknown.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        session.code = code
        return [
            participant
            for participant_id, participant in session.participants.items()
            if participant_id != connection.id and participant.is_open
        ]

    def leave(self, session_id: str, connection: Participant) -> bool:
        """
        Removes `connection` from the session, deleting the session when empty.

        Returns:
            True if the connection was a participant.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return False
        removed = session.participants.pop(connection.id, None) is not None
        if not session.participants:
            del self._sessions[session_id]
            LOGGER.info("Session %s closed due to no clients", session_id)
        return removed

    def stats(self) -> Dict[str, int]:
        return {
            "sessions": len(self._sessions),
            "participants": sum(len(s.participants) for s in self._sessions.values()),
        }


__all__ = [
    "Participant",
    "Session",
    "SessionStore",
    "generate_session_id",
    "SESSION_ID_LENGTH",
]
