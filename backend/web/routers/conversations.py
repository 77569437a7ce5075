"""Conversation lifecycle, streaming and workspace file endpoints."""

from collections.abc import AsyncIterator
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.web.core.dependencies import get_coordinator, require_active
from backend.web.models.requests import (
    CreateConversationRequest,
    FolderRequest,
    RenameFileRequest,
    SelectFileRequest,
    StreamRequest,
    UpdateFileRequest,
)
from backend.web.services.coordinator import CreateConversation, SwitchConversation, WorkspaceCoordinator
from storage.models import ProjectRecord

router = APIRouter(prefix="/api/conversations", tags=["conversations"])

Coordinator = Annotated[WorkspaceCoordinator, Depends(get_coordinator)]


def _project_payload(record: ProjectRecord) -> dict[str, Any]:
    payload = record.model_dump(mode="json", exclude={"chat_messages", "builder_state"})
    payload["local_only"] = record.local_only
    return payload


@router.post("")
async def create_conversation(req: CreateConversationRequest, coordinator: Coordinator) -> dict[str, Any]:
    try:
        record = await coordinator.dispatch(CreateConversation(req.conversation_id))
    except ValueError as e:
        raise HTTPException(409, str(e)) from e
    return {"conversation_id": coordinator.store.active_id, "project": _project_payload(record)}


@router.post("/{conversation_id}/activate")
async def activate_conversation(conversation_id: str, coordinator: Coordinator) -> dict[str, Any]:
    record = await coordinator.dispatch(SwitchConversation(conversation_id))
    return {"conversation_id": conversation_id, "project": _project_payload(record)}


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: str, coordinator: Coordinator) -> dict[str, Any]:
    if coordinator.store.get_state(conversation_id) is None and coordinator.binding.binding_for(conversation_id) is None:
        raise HTTPException(404, f"Conversation not found: {conversation_id}")
    deleted = await coordinator.delete_conversation(conversation_id)
    return {"conversation_id": conversation_id, "deleted": deleted}


@router.post("/{conversation_id}/stream")
async def stream_into_conversation(
    conversation_id: str,
    req: StreamRequest,
    coordinator: Coordinator,
) -> dict[str, Any]:
    require_active(coordinator, conversation_id)

    async def _chunks() -> AsyncIterator[str]:
        for chunk in req.chunks:
            yield chunk

    mutations = await coordinator.stream(_chunks(), req.messages)
    return {
        "conversation_id": conversation_id,
        "paths": list(dict.fromkeys(m.path for m in mutations)),
    }


@router.get("/{conversation_id}/files")
async def get_files(conversation_id: str, coordinator: Coordinator) -> dict[str, Any]:
    workspace = coordinator.store.get_state(conversation_id)
    if workspace is None:
        raise HTTPException(404, f"Conversation not found: {conversation_id}")
    return {
        "conversation_id": conversation_id,
        "active": coordinator.store.active_id == conversation_id,
        **workspace.builder_state(),
        "pending_sync": workspace.pending_paths(),
    }


@router.get("/{conversation_id}/files/content")
async def get_file_content(
    conversation_id: str,
    coordinator: Coordinator,
    path: str = Query(...),
) -> dict[str, Any]:
    workspace = require_active(coordinator, conversation_id)
    if path not in workspace.files:
        raise HTTPException(404, f"File not found: {path}")
    return {"path": path, "content": coordinator.store.get_content(path)}


@router.put("/{conversation_id}/files")
async def update_file(conversation_id: str, req: UpdateFileRequest, coordinator: Coordinator) -> dict[str, Any]:
    require_active(coordinator, conversation_id)
    coordinator.store.update_content(req.path, req.content)
    return {"path": req.path, "updated": True}


@router.post("/{conversation_id}/files/rename")
async def rename_file(conversation_id: str, req: RenameFileRequest, coordinator: Coordinator) -> dict[str, Any]:
    require_active(coordinator, conversation_id)
    if not coordinator.store.rename(req.old_path, req.new_path):
        raise HTTPException(404, f"File not found: {req.old_path}")
    return {"old_path": req.old_path, "new_path": req.new_path}


@router.delete("/{conversation_id}/files")
async def delete_file(
    conversation_id: str,
    coordinator: Coordinator,
    path: str = Query(...),
) -> dict[str, Any]:
    require_active(coordinator, conversation_id)
    return {"removed": coordinator.store.delete(path)}


@router.post("/{conversation_id}/folders")
async def create_folder(conversation_id: str, req: FolderRequest, coordinator: Coordinator) -> dict[str, Any]:
    require_active(coordinator, conversation_id)
    return {"placeholder": coordinator.store.create_folder(req.path)}


@router.post("/{conversation_id}/selection")
async def select_file(conversation_id: str, req: SelectFileRequest, coordinator: Coordinator) -> dict[str, Any]:
    require_active(coordinator, conversation_id)
    coordinator.store.set_selected_path(req.path)
    return {"selected_path": req.path}
