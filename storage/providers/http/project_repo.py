"""
HTTP project repository — async client for the project backend REST API.

Every response uses the envelope ``{"success": bool, "project" | "projects" |
..., "errors": [...]}``. Writes require a bearer token.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from storage.interfaces import BackendError, ProjectConflictError, ProjectNotFoundError, ProjectRepo
from storage.models import CreateProjectRequest, ProjectRecord, UpdateProjectRequest

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:3000/api"
DEFAULT_HEALTH_PATH = "/health"

_DUPLICATE_MARKERS = ("duplicate", "already exists", "23505")


class HttpProjectRepo(ProjectRepo):
    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        *,
        token: str | None = None,
        timeout: float = 10,
        health_path: str = DEFAULT_HEALTH_PATH,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._url = base_url.rstrip("/")
        self._token = token or None
        self._health_path = health_path
        self._client = httpx.AsyncClient(base_url=self._url, timeout=timeout, transport=transport)

    @property
    def has_credential(self) -> bool:
        return self._token is not None

    def _headers(self, *, write: bool) -> dict[str, str]:
        if self._token is None:
            if write:
                raise BackendError("No authentication token configured for project backend writes")
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def _send(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        write: bool = False,
        json: Any = None,
    ) -> dict[str, Any]:
        headers = self._headers(write=write)
        try:
            r = await self._client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise BackendError(f"{operation}: {e}") from e
        return self._envelope(r, operation)

    @staticmethod
    def _envelope(response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            raise BackendError(f"{operation}: expected JSON object, got {type(payload).__name__}")
        errors = payload.get("errors") or []
        detail = "; ".join(str(e) for e in errors) or response.reason_phrase
        if response.status_code == 409 or any(m in detail.lower() for m in _DUPLICATE_MARKERS):
            raise ProjectConflictError(f"{operation}: {detail}")
        if response.status_code == 404:
            raise ProjectNotFoundError(f"{operation}: {detail}")
        if response.is_error or payload.get("success") is False:
            raise BackendError(f"{operation} failed ({response.status_code}): {detail}")
        return payload

    @staticmethod
    def _project(payload: dict[str, Any], operation: str) -> ProjectRecord:
        data = payload.get("project") or payload.get("data")
        if not isinstance(data, dict):
            raise BackendError(f"{operation}: response has no project object")
        return ProjectRecord.model_validate(data)

    async def check_health(self, timeout: float) -> bool:
        try:
            r = await self._client.get(self._health_path, timeout=timeout)
        except httpx.HTTPError as e:
            logger.debug("Health probe failed: %s", e)
            return False
        return r.is_success

    async def list_projects(self) -> list[ProjectRecord]:
        payload = await self._send("GET", "/projects", "list_projects")
        return [ProjectRecord.model_validate(p) for p in payload.get("projects") or payload.get("data") or []]

    async def get_project(self, project_id: str) -> ProjectRecord | None:
        try:
            payload = await self._send("GET", f"/projects/{project_id}", "get_project")
        except ProjectNotFoundError:
            return None
        return self._project(payload, "get_project")

    async def create_project(self, request: CreateProjectRequest) -> ProjectRecord:
        payload = await self._send(
            "POST", "/projects", "create_project", write=True, json=request.model_dump(mode="json")
        )
        return self._project(payload, "create_project")

    async def update_project(self, project_id: str, request: UpdateProjectRequest) -> ProjectRecord:
        payload = await self._send(
            "PUT",
            f"/projects/{project_id}",
            "update_project",
            write=True,
            json=request.model_dump(mode="json", exclude_none=True),
        )
        return self._project(payload, "update_project")

    async def delete_project(self, project_id: str) -> bool:
        try:
            await self._send("DELETE", f"/projects/{project_id}", "delete_project", write=True)
        except ProjectNotFoundError:
            return False
        return True

    async def save_chat(self, project_id: str, messages: list[dict[str, Any]]) -> ProjectRecord:
        payload = await self._send(
            "POST", f"/projects/{project_id}/chat", "save_chat", write=True, json={"messages": messages}
        )
        return self._project(payload, "save_chat")

    async def load_chat(self, project_id: str) -> list[dict[str, Any]]:
        payload = await self._send("GET", f"/projects/{project_id}/chat", "load_chat")
        return list(payload.get("messages") or [])

    async def save_builder_state(self, project_id: str, builder_state: dict[str, Any]) -> ProjectRecord:
        payload = await self._send(
            "POST",
            f"/projects/{project_id}/builder",
            "save_builder_state",
            write=True,
            json={"builderState": builder_state},
        )
        return self._project(payload, "save_builder_state")

    async def load_builder_state(self, project_id: str) -> dict[str, Any] | None:
        payload = await self._send("GET", f"/projects/{project_id}/builder", "load_builder_state")
        return payload.get("builderState") or None

    async def touch_activity(self, project_id: str, at: datetime | None = None) -> ProjectRecord:
        when = (at or datetime.now(UTC)).isoformat()
        payload = await self._send(
            "POST",
            f"/projects/{project_id}/activity",
            "touch_activity",
            write=True,
            json={"last_activity": when},
        )
        return self._project(payload, "touch_activity")

    async def close(self) -> None:
        await self._client.aclose()
