"""
This module defines the FastAPI routes of the duetcode server.

Besides the WebSocket endpoint that editors connect to, it exposes a health
check and a small statistics endpoint. The router is built around an existing
`ConnectionManager`, which is injected by the application factory.
"""
from fastapi import APIRouter, WebSocket
from pydantic import BaseModel

from .connections import ConnectionManager


class ServerStats(BaseModel):
    """Snapshot of live server state."""

    connections: int
    sessions: int
    participants: int
    model: str


def get_router(manager: ConnectionManager) -> APIRouter:
    """
    Creates the API router for the duetcode server.

    Args:
        manager: The connection manager that serves WebSocket clients and
                 holds the router and session store.

    Returns:
        A configured `APIRouter` instance.
    """
    router = APIRouter()

    @router.get("/health")
    def health_check():
        """Provides a simple health check endpoint for the service."""
        return {"status": "healthy"}

    @router.get("/stats", response_model=ServerStats)
    def get_stats():
        """Counts open connections and live sessions."""
        session_stats = manager.sessions.stats()
        return ServerStats(
            connections=len(manager),
            sessions=session_stats["sessions"],
            participants=session_stats["participants"],
            model=manager.router.current_model,
        )

    @router.websocket("/")
    async def editor_socket(websocket: WebSocket):
        await manager.serve(websocket)

    @router.websocket("/ws")
    async def editor_socket_alias(websocket: WebSocket):
        await manager.serve(websocket)

    return router
