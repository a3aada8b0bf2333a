"""
This module is responsible for creating and configuring the FastAPI application.

The `create_app` factory wires the session store, the action policy, the
generation collaborator, the request router and the connection manager
together, mounts the routes, and attaches the components to `app.state` so
tests and operators can reach them.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api import get_router
from .config import DuetSettings
from .connections import ConnectionManager
from .generation import CodeGenerator, build_generator
from .logging_utils import configure_logging
from .policy import ActionPolicy
from .router import RequestRouter
from .sessions import SessionStore


def create_app(
    settings: Optional[DuetSettings] = None,
    *,
    generator: Optional[CodeGenerator] = None,
    policy: Optional[ActionPolicy] = None,
) -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.

    Args:
        settings: Server configuration; read from the environment when omitted.
        generator: Generation collaborator; chosen from settings when omitted.
        policy: Action policy; built from the settings' tuning knobs when omitted.

    Returns:
        A fully configured `FastAPI` application instance.
    """
    settings = settings or DuetSettings()
    configure_logging(settings)

    generator = generator or build_generator(settings)
    policy = policy or ActionPolicy(
        settings.policy_state_space,
        epsilon=settings.policy_epsilon,
        learning_rate=settings.policy_learning_rate,
        discount_factor=settings.policy_discount_factor,
    )
    sessions = SessionStore(id_length=settings.session_id_length)
    router = RequestRouter(sessions=sessions, policy=policy, generator=generator, settings=settings)
    manager = ConnectionManager(router, sessions)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await manager.shutdown()
        aclose = getattr(generator, "aclose", None)
        if aclose is not None:
            await aclose()

    app = FastAPI(
        title="duetcode",
        description="Collaborative code editing with adaptive AI assistance",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.sessions = sessions
    app.state.policy = policy
    app.state.generator = generator
    app.state.router = router
    app.state.manager = manager

    app.include_router(get_router(manager))

    return app
