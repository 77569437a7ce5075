"""View activation and project listing endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException

from backend.web.core.dependencies import get_coordinator
from backend.web.services.coordinator import ActivateView, ViewKind, WorkspaceCoordinator

router = APIRouter(prefix="/api", tags=["views"])


@router.post("/views/{view}")
async def activate_view(
    view: str,
    coordinator: Annotated[WorkspaceCoordinator, Depends(get_coordinator)],
) -> dict[str, Any]:
    try:
        kind = ViewKind(view)
    except ValueError as e:
        raise HTTPException(400, f"Unknown view: {view}. Expected one of: {', '.join(ViewKind)}") from e
    return await coordinator.dispatch(ActivateView(kind))


@router.get("/projects")
async def list_projects(coordinator: Annotated[WorkspaceCoordinator, Depends(get_coordinator)]) -> dict[str, Any]:
    projects = await coordinator.binding.list_projects()
    return {"projects": [p.model_dump(mode="json", exclude={"chat_messages", "builder_state"}) for p in projects]}
