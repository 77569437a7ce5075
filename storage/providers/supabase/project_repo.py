"""Supabase repository for project records (direct ``projects`` table access)."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

import httpx
from postgrest.exceptions import APIError

from storage.interfaces import BackendError, ProjectConflictError, ProjectRepo
from storage.models import CreateProjectRequest, ProjectRecord, ProjectStatus, UpdateProjectRequest
from storage.providers.supabase import _query

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION = "23505"


def _now() -> str:
    return datetime.now(UTC).isoformat()


class SupabaseProjectRepo(ProjectRepo):
    """Project repository backed by a supabase-py client.

    The row id is the conversation id (``chat_uuid``), so the primary key
    itself guarantees at most one project per conversation.
    """

    _TABLE = "projects"

    def __init__(self, client: Any, *, user_id: str | None = None) -> None:
        if client is None:
            raise RuntimeError(
                "Supabase project repo requires a client. "
                "Pass supabase_client=... into build_project_repo(strategy='supabase')."
            )
        if not hasattr(client, "table"):
            raise RuntimeError(
                "Supabase project repo requires a client with table(name). "
                "Use supabase-py client or a compatible adapter."
            )
        self._client = client
        self._user_id = user_id

    def _table(self) -> Any:
        return self._client.table(self._TABLE)

    def _scoped(self, query: Any) -> Any:
        if self._user_id is not None:
            query = query.eq("user_id", self._user_id)
        return query

    def _one(self, response: Any, operation: str) -> ProjectRecord | None:
        found = _query.rows(response, operation)
        if not found:
            return None
        return ProjectRecord.model_validate(found[0])

    def _require(self, response: Any, project_id: str, operation: str) -> ProjectRecord:
        record = self._one(response, operation)
        if record is None:
            raise BackendError(f"Supabase project {project_id} not found during {operation}")
        return record

    # ------------------------------------------------------------------
    # Sync bodies, run through asyncio.to_thread
    # ------------------------------------------------------------------

    def _probe(self) -> None:
        _query.limit(self._table().select("id"), 1, "check_health").execute()

    def _list(self) -> list[ProjectRecord]:
        query = _query.order(
            self._scoped(self._table().select("*")),
            "updated_at",
            desc=True,
            operation="list_projects",
        )
        return [ProjectRecord.model_validate(r) for r in _query.rows(query.execute(), "list_projects")]

    def _get(self, project_id: str) -> ProjectRecord | None:
        response = self._scoped(self._table().select("*").eq("id", project_id)).execute()
        return self._one(response, "get_project")

    def _find(self, chat_uuid: str) -> ProjectRecord | None:
        query = self._scoped(self._table().select("*").eq("chat_uuid", chat_uuid))
        return self._one(_query.limit(query, 1, "find_by_chat_uuid").execute(), "find_by_chat_uuid")

    def _insert(self, request: CreateProjectRequest) -> ProjectRecord:
        now = _now()
        row: dict[str, Any] = {
            "id": request.chat_uuid,
            **request.model_dump(mode="json"),
            "status": ProjectStatus.DRAFT.value,
            "created_at": now,
            "updated_at": now,
        }
        if self._user_id is not None:
            row["user_id"] = self._user_id
        try:
            response = self._table().insert(row).execute()
        except APIError as e:
            if e.code == _UNIQUE_VIOLATION or "duplicate" in (e.message or "").lower():
                raise ProjectConflictError(f"Project already exists for chat {request.chat_uuid}") from e
            raise BackendError(f"Supabase create_project failed: {e.message}") from e
        return self._require(response, request.chat_uuid, "create_project")

    def _update(self, project_id: str, fields: dict[str, Any], operation: str) -> ProjectRecord:
        payload = {**fields, "updated_at": _now()}
        try:
            response = self._scoped(self._table().update(payload).eq("id", project_id)).execute()
        except APIError as e:
            raise BackendError(f"Supabase {operation} failed: {e.message}") from e
        return self._require(response, project_id, operation)

    def _delete(self, project_id: str) -> bool:
        response = self._scoped(self._table().delete().eq("id", project_id)).execute()
        return bool(_query.rows(response, "delete_project"))

    def _select_column(self, project_id: str, column: str, operation: str) -> Any:
        response = self._scoped(self._table().select(f"id,{column}").eq("id", project_id)).execute()
        found = _query.rows(response, operation)
        if not found:
            raise BackendError(f"Supabase project {project_id} not found during {operation}")
        return found[0].get(column)

    # ------------------------------------------------------------------
    # ProjectRepo
    # ------------------------------------------------------------------

    async def _call(self, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except (APIError, httpx.HTTPError) as e:
            raise BackendError(f"Supabase {fn.__name__.lstrip('_')} failed: {e}") from e

    async def check_health(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(asyncio.to_thread(self._probe), timeout)
        except (TimeoutError, APIError, httpx.HTTPError, OSError) as e:
            logger.debug("Supabase health probe failed: %s", e)
            return False
        return True

    async def list_projects(self) -> list[ProjectRecord]:
        return await self._call(self._list)

    async def get_project(self, project_id: str) -> ProjectRecord | None:
        return await self._call(self._get, project_id)

    async def find_by_chat_uuid(self, chat_uuid: str) -> ProjectRecord | None:
        return await self._call(self._find, chat_uuid)

    async def create_project(self, request: CreateProjectRequest) -> ProjectRecord:
        return await self._call(self._insert, request)

    async def update_project(self, project_id: str, request: UpdateProjectRequest) -> ProjectRecord:
        fields = request.model_dump(mode="json", exclude_none=True)
        return await self._call(self._update, project_id, fields, "update_project")

    async def delete_project(self, project_id: str) -> bool:
        return await self._call(self._delete, project_id)

    async def save_chat(self, project_id: str, messages: list[dict[str, Any]]) -> ProjectRecord:
        fields = {"chat_messages": messages, "last_chat_activity": _now()}
        return await self._call(self._update, project_id, fields, "save_chat")

    async def load_chat(self, project_id: str) -> list[dict[str, Any]]:
        messages = await self._call(self._select_column, project_id, "chat_messages", "load_chat")
        return list(messages or [])

    async def save_builder_state(self, project_id: str, builder_state: dict[str, Any]) -> ProjectRecord:
        fields = {"builder_state": builder_state}
        return await self._call(self._update, project_id, fields, "save_builder_state")

    async def load_builder_state(self, project_id: str) -> dict[str, Any] | None:
        state = await self._call(self._select_column, project_id, "builder_state", "load_builder_state")
        return state or None

    async def touch_activity(self, project_id: str, at: datetime | None = None) -> ProjectRecord:
        fields = {"last_chat_activity": (at or datetime.now(UTC)).isoformat()}
        return await self._call(self._update, project_id, fields, "touch_activity")
