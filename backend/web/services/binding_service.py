"""Conversation ↔ project binding.

Every conversation is bound to exactly one project record. The binding is
resolved cache → remote lookup by chat_uuid → create, and a create that loses
a race (ProjectConflictError) re-fetches and adopts the winner. When the
backend is unreachable or no credential is configured the conversation gets a
local-only record so the workspace keeps working.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from artifacts.serializer import files_from_transcript, prior_files_from_transcript
from storage.interfaces import BackendError, ProjectConflictError, ProjectRepo
from storage.models import CreateProjectRequest, ProjectRecord, default_project_context
from workspace.state import ConversationId
from workspace.store import ChatWorkspaceStore

logger = logging.getLogger(__name__)

NEW_PROJECT_DESCRIPTION = "Project created from chat"


def new_project_request(conversation_id: ConversationId) -> CreateProjectRequest:
    return CreateProjectRequest(
        name=f"Chat Project {datetime.now().strftime('%Y-%m-%d')}",
        description=NEW_PROJECT_DESCRIPTION,
        context=default_project_context(),
        chat_uuid=conversation_id,
    )


class ProjectBindingService:
    def __init__(
        self,
        repo: ProjectRepo,
        store: ChatWorkspaceStore,
        *,
        extra_denylist: tuple[str, ...] = (),
    ):
        self._repo = repo
        self._store = store
        self._extra_denylist = extra_denylist
        self._bindings: dict[ConversationId, ProjectRecord] = {}
        self._inflight: dict[ConversationId, asyncio.Task[ProjectRecord]] = {}
        self._current_id: ConversationId | None = None
        self._local_only_logged = False

    @property
    def current(self) -> ProjectRecord | None:
        if self._current_id is None:
            return None
        return self._bindings.get(self._current_id)

    @property
    def current_conversation_id(self) -> ConversationId | None:
        return self._current_id

    def binding_for(self, conversation_id: ConversationId) -> ProjectRecord | None:
        return self._bindings.get(conversation_id)

    def conversation_for_project(self, project_id: str) -> ConversationId | None:
        for conversation_id, record in self._bindings.items():
            if record.id == project_id:
                return conversation_id
        return None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def ensure_project_for(self, conversation_id: ConversationId) -> ProjectRecord:
        cached = self._bindings.get(conversation_id)
        if cached is not None and not cached.local_only:
            return cached
        # @@@single-flight - concurrent callers in this process share one resolution
        task = self._inflight.get(conversation_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._resolve(conversation_id))
            self._inflight[conversation_id] = task
            task.add_done_callback(lambda _: self._inflight.pop(conversation_id, None))
        return await asyncio.shield(task)

    async def _resolve(self, conversation_id: ConversationId) -> ProjectRecord:
        cached = self._bindings.get(conversation_id)
        if not self._repo.has_credential:
            if not self._local_only_logged:
                logger.warning("No backend credential configured; projects are kept in memory only")
                self._local_only_logged = True
            return cached or self._bind_local(conversation_id)
        try:
            record = await self._repo.find_by_chat_uuid(conversation_id)
            if record is None:
                record = await self._create(conversation_id)
        except BackendError as exc:
            logger.warning("Project lookup for %s failed, using local binding: %s", conversation_id, exc)
            return cached or self._bind_local(conversation_id)
        if cached is not None:
            record = self._carry_local_state(cached, record)
        self._bindings[conversation_id] = record
        return record

    async def _create(self, conversation_id: ConversationId) -> ProjectRecord:
        try:
            record = await self._repo.create_project(new_project_request(conversation_id))
        except ProjectConflictError:
            logger.info("Project for %s created concurrently, adopting existing record", conversation_id)
            record = await self._repo.find_by_chat_uuid(conversation_id)
            if record is None:
                raise BackendError(f"Project for {conversation_id} conflicted but could not be re-fetched")
            return record
        logger.info("Created project %s for conversation %s", record.id, conversation_id)
        return record

    def _bind_local(self, conversation_id: ConversationId) -> ProjectRecord:
        now = datetime.now(UTC)
        request = new_project_request(conversation_id)
        record = ProjectRecord(
            id=conversation_id,
            created_at=now,
            updated_at=now,
            local_only=True,
            **request.model_dump(),
        )
        self._bindings[conversation_id] = record
        return record

    @staticmethod
    def _carry_local_state(local: ProjectRecord, remote: ProjectRecord) -> ProjectRecord:
        updates: dict[str, Any] = {}
        if local.chat_messages and not remote.chat_messages:
            updates["chat_messages"] = local.chat_messages
        if local.builder_state and not remote.builder_state:
            updates["builder_state"] = local.builder_state
        return remote.model_copy(update=updates) if updates else remote

    # ------------------------------------------------------------------
    # Switching
    # ------------------------------------------------------------------

    async def switch_to(self, conversation_id: ConversationId, *, reload: bool = False) -> ProjectRecord:
        """Make ``conversation_id`` current and load its persisted workspace.

        Stored content replaces the store's files wholesale. A conversation that
        already has live state in the store keeps it unless ``reload`` is set.
        """
        fresh = self._store.get_state(conversation_id) is None
        self._store.switch_conversation(conversation_id)
        self._current_id = conversation_id
        record = await self.ensure_project_for(conversation_id)
        if not (fresh or reload):
            return record

        messages = record.chat_messages
        builder_state = record.builder_state
        if not record.local_only:
            try:
                messages = await self._repo.load_chat(record.id)
                builder_state = await self._repo.load_builder_state(record.id)
            except BackendError as exc:
                logger.warning("Could not load stored state for %s: %s", conversation_id, exc)

        if self._store.active_id != conversation_id:
            logger.debug("Conversation %s switched away while loading, dropping stored state", conversation_id)
            return record
        record = record.model_copy(update={"chat_messages": list(messages), "builder_state": builder_state})
        self._bindings[conversation_id] = record
        self._load_into_store(messages, builder_state)
        return record

    def _load_into_store(self, messages: list[dict[str, Any]], builder_state: dict[str, Any] | None) -> None:
        with self._store.bulk_load():
            files = (builder_state or {}).get("files")
            if files:
                self._store.replace_files(files)
                self._store.snapshot_prior((builder_state or {}).get("prior_files") or {})
                self._store.set_selected_path((builder_state or {}).get("selected_path") or "")
                self._store.set_project_root((builder_state or {}).get("project_root") or "")
            elif messages:
                extra = self._extra_denylist
                self._store.replace_files(files_from_transcript(messages, extra_denylist=extra))
                self._store.snapshot_prior(prior_files_from_transcript(messages, extra_denylist=extra))
            else:
                self._store.replace_files({})

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def list_projects(self) -> list[ProjectRecord]:
        if self._repo.has_credential:
            try:
                return await self._repo.list_projects()
            except BackendError as exc:
                logger.warning("Listing projects failed, showing local bindings: %s", exc)
        return list(self._bindings.values())

    async def delete_project(self, conversation_id: ConversationId) -> bool:
        record = self._bindings.pop(conversation_id, None)
        deleted = record is not None
        if record is not None and not record.local_only:
            deleted = await self._repo.delete_project(record.id)
        self._store.clear_conversation(conversation_id)
        if self._current_id == conversation_id:
            self._current_id = None
        return deleted

    def apply_local(self, project_id: str, kind: str, payload: Any) -> ProjectRecord | None:
        """Mirror a save into the cached record, whether or not it reached the backend."""
        conversation_id = self.conversation_for_project(project_id)
        if conversation_id is None:
            return None
        record = self._bindings[conversation_id]
        now = datetime.now(UTC)
        updates: dict[str, Any] = {"updated_at": now}
        if kind == "chat":
            updates["chat_messages"] = list(payload)
            updates["last_activity"] = now
        elif kind == "workspace":
            updates["builder_state"] = dict(payload)
        elif kind == "activity":
            updates["last_activity"] = payload or now
        else:
            raise ValueError(f"Unknown save kind: {kind}")
        record = record.model_copy(update=updates)
        self._bindings[conversation_id] = record
        return record
