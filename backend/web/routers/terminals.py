"""Terminal session endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException

from backend.web.core.dependencies import get_coordinator
from backend.web.models.requests import TerminalInputRequest
from backend.web.services.coordinator import WorkspaceCoordinator
from sandbox.instance import SandboxFatalError
from sandbox.terminal import TerminalSessionManager

router = APIRouter(prefix="/api/terminals", tags=["terminals"])


async def get_terminals(
    coordinator: Annotated[WorkspaceCoordinator, Depends(get_coordinator)],
) -> TerminalSessionManager:
    return coordinator.terminals


Terminals = Annotated[TerminalSessionManager, Depends(get_terminals)]


def _listing(terminals: TerminalSessionManager) -> dict[str, Any]:
    return {
        "selected_id": terminals.selected_id,
        "sessions": [s.to_dict() for s in terminals.list_sessions()],
    }


@router.get("")
async def list_terminals(terminals: Terminals) -> dict[str, Any]:
    return _listing(terminals)


@router.post("")
async def create_terminal(terminals: Terminals) -> dict[str, Any]:
    process_id = terminals.create()
    return {"process_id": process_id, **_listing(terminals)}


@router.post("/reset")
async def reset_terminals(terminals: Terminals) -> dict[str, Any]:
    process_id = await terminals.reset()
    return {"process_id": process_id, **_listing(terminals)}


@router.post("/{process_id}/input")
async def write_terminal(process_id: str, req: TerminalInputRequest, terminals: Terminals) -> dict[str, Any]:
    if terminals.get(process_id) is None:
        raise HTTPException(404, f"Unknown terminal session: {process_id}")
    try:
        await terminals.write(process_id, req.data)
    except SandboxFatalError:
        raise
    except RuntimeError as e:
        raise HTTPException(409, str(e)) from e
    return {"process_id": process_id, "written": len(req.data)}


@router.post("/{process_id}/select")
async def select_terminal(process_id: str, terminals: Terminals) -> dict[str, Any]:
    try:
        terminals.select(process_id)
    except KeyError as e:
        raise HTTPException(404, f"Unknown terminal session: {process_id}") from e
    return _listing(terminals)


@router.delete("/{process_id}")
async def close_terminal(process_id: str, terminals: Terminals) -> dict[str, Any]:
    try:
        await terminals.close(process_id)
    except KeyError as e:
        raise HTTPException(404, f"Unknown terminal session: {process_id}") from e
    return _listing(terminals)
