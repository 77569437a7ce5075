"""Shared storage domain models — provider-neutral data types."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ProjectStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    GENERATING = "generating"
    GENERATED = "generated"
    FAILED = "failed"


class GenerationStatus(StrEnum):
    CONTEXT_ONLY = "context_only"
    GENERATING = "generating"
    GENERATED = "generated"
    FAILED = "failed"


def default_project_context() -> dict[str, Any]:
    return {
        "goal": "",
        "user_stories": [],
        "tech_stack": [],
        "project_type": "web_app",
        "version": "1.0.0",
    }


class ProjectRecord(BaseModel):
    """Durable project bound to one conversation (``chat_uuid``)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    name: str
    description: str | None = None
    context: dict[str, Any] = Field(default_factory=default_project_context)
    status: ProjectStatus = ProjectStatus.DRAFT
    generation_status: GenerationStatus = GenerationStatus.CONTEXT_ONLY
    chat_uuid: str | None = None
    project_path: str | None = None
    chat_messages: list[dict[str, Any]] = Field(default_factory=list)
    builder_state: dict[str, Any] | None = None
    last_activity: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("last_activity", "last_chat_activity"),
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # True when the record only exists in this process (backend unreachable)
    local_only: bool = Field(default=False, exclude=True)


class CreateProjectRequest(BaseModel):
    name: str
    description: str | None = None
    context: dict[str, Any] = Field(default_factory=default_project_context)
    chat_uuid: str
    generation_status: GenerationStatus = GenerationStatus.CONTEXT_ONLY
    project_path: str | None = None


class UpdateProjectRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    context: dict[str, Any] | None = None
    status: ProjectStatus | None = None
    generation_status: GenerationStatus | None = None
    project_path: str | None = None
    chat_uuid: str | None = None
