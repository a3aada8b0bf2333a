"""Pytest configuration for shared fixtures."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from duetcode.config import DuetSettings
from duetcode.errors import TransportError
from duetcode.generation import GenerationMode
from duetcode.messages import OutboundMessage, encode_message
from duetcode.policy import ActionPolicy
from duetcode.router import RequestRouter
from duetcode.sessions import SessionStore


class FakeConnection:
    """Records outbound messages as wire dictionaries."""

    def __init__(self, connection_id: str, *, fail: bool = False) -> None:
        self.id = connection_id
        self.session_id: Optional[str] = None
        self.open = True
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    @property
    def is_open(self) -> bool:
        return self.open

    async def send(self, message: OutboundMessage) -> None:
        if not self.open or self.fail:
            raise TransportError(self.id, "closed")
        self.sent.append(json.loads(encode_message(message)))


class ScriptedGenerator:
    """
    Generation collaborator stub.

    `responses` maps a mode to a string, an exception to raise, or a callable
    taking the input. Inputs listed in `gates` wait on their event first.
    """

    def __init__(self, responses: Optional[Dict[GenerationMode, Any]] = None) -> None:
        self.responses: Dict[GenerationMode, Any] = dict(responses or {})
        self.calls: List[Tuple[str, GenerationMode, str]] = []
        self.feedback: List[Tuple[str, str]] = []
        self.gates: Dict[str, asyncio.Event] = {}

    async def generate(self, input: str, mode, model: str) -> str:
        mode = GenerationMode(mode)
        self.calls.append((input, mode, model))
        gate = self.gates.get(input)
        if gate is not None:
            await gate.wait()
        response = self.responses.get(mode, f"result:{mode.value}:{input}")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(input)
        return response

    def record_feedback(self, query: str, value: str) -> None:
        self.feedback.append((query, value))


@pytest.fixture
def settings() -> DuetSettings:
    return DuetSettings(mock_mode=True, policy_epsilon=0.0)


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def policy() -> ActionPolicy:
    return ActionPolicy(1000, epsilon=0.0)


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture
def router(settings, generator, policy, sessions) -> RequestRouter:
    return RequestRouter(sessions=sessions, policy=policy, generator=generator, settings=settings)


@pytest.fixture
def make_connection() -> Callable[..., FakeConnection]:
    counter = {"n": 0}

    def _factory(connection_id: Optional[str] = None, **kwargs: Any) -> FakeConnection:
        counter["n"] += 1
        return FakeConnection(connection_id or f"conn-{counter['n']}", **kwargs)

    return _factory


@pytest.fixture
def send() -> Callable[[RequestRouter, FakeConnection, Any], None]:
    """Routes one frame (a dict is JSON-encoded) to completion."""

    def _send(router: RequestRouter, connection: FakeConnection, payload: Any) -> None:
        raw = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
        asyncio.run(router.handle_frame(connection, raw))

    return _send
