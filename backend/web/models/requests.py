"""Pydantic request models for the artisync web API."""

from typing import Any

from pydantic import BaseModel, Field


class CreateConversationRequest(BaseModel):
    conversation_id: str | None = None


class StreamRequest(BaseModel):
    chunks: list[str]
    messages: list[dict[str, Any]] | None = None


class UpdateFileRequest(BaseModel):
    path: str = Field(..., min_length=1)
    content: str


class RenameFileRequest(BaseModel):
    old_path: str = Field(..., min_length=1)
    new_path: str = Field(..., min_length=1)


class FolderRequest(BaseModel):
    path: str = Field(..., min_length=1)


class SelectFileRequest(BaseModel):
    path: str


class TerminalInputRequest(BaseModel):
    data: str
