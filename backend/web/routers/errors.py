"""Error queue endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException

from backend.web.core.dependencies import get_coordinator
from backend.web.services.coordinator import WorkspaceCoordinator

router = APIRouter(prefix="/api/errors", tags=["errors"])


@router.get("")
async def list_errors(coordinator: Annotated[WorkspaceCoordinator, Depends(get_coordinator)]) -> dict[str, Any]:
    return {"errors": [e.to_dict() for e in coordinator.store.errors]}


@router.delete("")
async def clear_errors(coordinator: Annotated[WorkspaceCoordinator, Depends(get_coordinator)]) -> dict[str, Any]:
    coordinator.store.clear_errors()
    return {"errors": []}


@router.delete("/{index}")
async def remove_error(
    index: int,
    coordinator: Annotated[WorkspaceCoordinator, Depends(get_coordinator)],
) -> dict[str, Any]:
    try:
        removed = coordinator.store.remove_error(index)
    except IndexError as e:
        raise HTTPException(404, str(e)) from e
    return {"removed": removed.to_dict(), "errors": [e.to_dict() for e in coordinator.store.errors]}
