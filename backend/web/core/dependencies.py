"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request

from backend.web.services.coordinator import WorkspaceCoordinator
from workspace.state import ConversationId, WorkspaceState


async def get_app(request: Request) -> FastAPI:
    """Get FastAPI app instance from request."""
    return request.app


async def get_coordinator(app: Annotated[FastAPI, Depends(get_app)]) -> WorkspaceCoordinator:
    coordinator = getattr(app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(503, "Engine is not initialised")
    return coordinator


def require_active(coordinator: WorkspaceCoordinator, conversation_id: ConversationId) -> WorkspaceState:
    """Return the workspace if ``conversation_id`` is the active one, else 404/409."""
    if coordinator.store.get_state(conversation_id) is None:
        raise HTTPException(404, f"Conversation not found: {conversation_id}")
    if coordinator.store.active_id != conversation_id:
        raise HTTPException(409, f"Conversation {conversation_id} is not active")
    workspace = coordinator.store.active_state()
    assert workspace is not None
    return workspace
