"""
duetcode: a real-time collaborative code editor backend with adaptive AI
assistance.

Browser editors connect over a WebSocket, share live code buffers through
collaboration sessions, and request generation, correction, translation and
chat from a generative-language API. An epsilon-greedy policy learns from
explicit feedback which processing mode to use for tunable requests.
"""
from .app import create_app
from .config import DuetSettings
from .errors import (
    DecodeError,
    DuetError,
    GenerationFailure,
    SessionNotFound,
    TransportError,
    UnknownMessageType,
)
from .messages import decode_message, encode_message
from .policy import ActionPolicy, PolicyMemory, RoutingAction, state_hash
from .router import RequestRouter
from .sessions import SessionStore

__all__ = [
    "ActionPolicy",
    "DecodeError",
    "DuetError",
    "DuetSettings",
    "GenerationFailure",
    "PolicyMemory",
    "RequestRouter",
    "RoutingAction",
    "SessionNotFound",
    "SessionStore",
    "TransportError",
    "UnknownMessageType",
    "create_app",
    "decode_message",
    "encode_message",
    "state_hash",
]

__version__ = "0.1.0"
