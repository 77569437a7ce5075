"""Storage contracts shared by every project repository provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from storage.models import CreateProjectRequest, ProjectRecord, UpdateProjectRequest


class BackendError(RuntimeError):
    """The project backend rejected a request or could not be reached."""


class ProjectConflictError(BackendError):
    """A project already exists for this chat_uuid."""


class ProjectNotFoundError(BackendError):
    pass


class ProjectRepo(ABC):
    """Async CRUD over project records plus their chat / builder payloads."""

    @property
    def has_credential(self) -> bool:
        """Whether writes can be authorised at all."""
        return True

    @abstractmethod
    async def check_health(self, timeout: float) -> bool: ...

    @abstractmethod
    async def list_projects(self) -> list[ProjectRecord]: ...

    @abstractmethod
    async def get_project(self, project_id: str) -> ProjectRecord | None: ...

    async def find_by_chat_uuid(self, chat_uuid: str) -> ProjectRecord | None:
        for project in await self.list_projects():
            if project.chat_uuid == chat_uuid:
                return project
        return None

    @abstractmethod
    async def create_project(self, request: CreateProjectRequest) -> ProjectRecord:
        """Raises ProjectConflictError when chat_uuid is already bound."""
        ...

    @abstractmethod
    async def update_project(self, project_id: str, request: UpdateProjectRequest) -> ProjectRecord: ...

    @abstractmethod
    async def delete_project(self, project_id: str) -> bool: ...

    @abstractmethod
    async def save_chat(self, project_id: str, messages: list[dict[str, Any]]) -> ProjectRecord: ...

    @abstractmethod
    async def load_chat(self, project_id: str) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def save_builder_state(self, project_id: str, builder_state: dict[str, Any]) -> ProjectRecord: ...

    @abstractmethod
    async def load_builder_state(self, project_id: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def touch_activity(self, project_id: str, at: datetime | None = None) -> ProjectRecord: ...

    async def close(self) -> None:
        return None
