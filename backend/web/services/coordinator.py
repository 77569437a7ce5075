"""WorkspaceCoordinator — one entry point that wires the engine together.

UI-level intents arrive as typed commands and fan out in dependency order:
cancel the previous conversation's timers → switch the store → bind the
project → mount / start terminals. Store change notifications feed the mount
and save schedulers; terminal errors feed the store's error queue.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from artifacts.parser import Mutation, StreamingArtifactParser
from backend.web.services.binding_service import ProjectBindingService
from backend.web.services.persistence_service import PersistenceGateway, SaveKind
from sandbox.sync import WorkspaceSyncBridge
from sandbox.terminal import TerminalSessionManager
from storage.models import ProjectRecord
from workspace.state import ConversationId, SyncOrigin, WorkspaceChange
from workspace.store import ChatWorkspaceStore

logger = logging.getLogger(__name__)

_MOUNT_KINDS = {"files", "renamed", "removed", "replaced"}
_SAVE_KINDS = {"files", "renamed", "removed", "replaced", "snapshot", "selection", "project_root"}


class ViewKind(StrEnum):
    EDITOR = "editor"
    PREVIEW = "preview"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class SwitchConversation:
    conversation_id: ConversationId


@dataclass(frozen=True)
class CreateConversation:
    conversation_id: ConversationId | None = None


@dataclass(frozen=True)
class ActivateView:
    view: ViewKind


Command = SwitchConversation | CreateConversation | ActivateView


@dataclass
class _Turn:
    conversation_id: ConversationId
    parser: StreamingArtifactParser
    origin: SyncOrigin


class WorkspaceCoordinator:
    def __init__(
        self,
        store: ChatWorkspaceStore,
        bridge: WorkspaceSyncBridge,
        terminals: TerminalSessionManager,
        binding: ProjectBindingService,
        gateway: PersistenceGateway,
        *,
        extra_denylist: tuple[str, ...] = (),
    ):
        self.store = store
        self.bridge = bridge
        self.terminals = terminals
        self.binding = binding
        self.gateway = gateway
        self._extra_denylist = extra_denylist
        self._turn: _Turn | None = None
        self.active_view = ViewKind.EDITOR
        self._unsubscribe = store.subscribe(self._on_change)
        terminals.set_error_sink(store.push_error)

    def close(self) -> None:
        self._unsubscribe()
        self.terminals.set_error_sink(None)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def dispatch(self, command: Command) -> Any:
        if isinstance(command, SwitchConversation):
            return await self._switch(command.conversation_id)
        if isinstance(command, CreateConversation):
            return await self._create(command.conversation_id)
        if isinstance(command, ActivateView):
            return await self._activate_view(ViewKind(command.view))
        raise TypeError(f"Unknown command: {command!r}")

    async def _create(self, conversation_id: ConversationId | None) -> ProjectRecord:
        if conversation_id is None:
            conversation_id = str(uuid.uuid4())
        elif (
            self.store.get_state(conversation_id) is not None
            or self.binding.binding_for(conversation_id) is not None
        ):
            raise ValueError(f"Conversation already exists: {conversation_id}")
        return await self._switch(conversation_id)

    async def _switch(self, conversation_id: ConversationId) -> ProjectRecord:
        previous = self.store.active_id
        if previous is not None and previous != conversation_id:
            self._cancel_timers(previous)
            self._abandon_turn()
        record = await self.binding.switch_to(conversation_id)
        if self.store.active_id == conversation_id:
            self.bridge.schedule_mount(conversation_id, full_replace=True)
        logger.info("Active conversation is now %s (project %s)", conversation_id, record.id)
        return record

    def _cancel_timers(self, conversation_id: ConversationId) -> None:
        self.bridge.cancel(conversation_id)
        record = self.binding.binding_for(conversation_id)
        if record is not None:
            self.gateway.cancel_for(record.id)

    async def _activate_view(self, view: ViewKind) -> dict[str, Any]:
        self.active_view = view
        result: dict[str, Any] = {"view": str(view)}
        if view == ViewKind.TERMINAL:
            if not self.terminals.list_sessions():
                self.terminals.create()
            result["selected_terminal"] = self.terminals.selected_id
        elif view == ViewKind.PREVIEW:
            workspace = self.store.active_state()
            if workspace is not None:
                self.bridge.cancel(workspace.conversation_id)
                result["mounted"] = await self.bridge.mount(workspace)
        return result

    async def delete_conversation(self, conversation_id: ConversationId) -> bool:
        self._cancel_timers(conversation_id)
        if self._turn is not None and self._turn.conversation_id == conversation_id:
            self._abandon_turn()
        return await self.binding.delete_project(conversation_id)

    # ------------------------------------------------------------------
    # Assistant turns
    # ------------------------------------------------------------------

    def begin_turn(self) -> StreamingArtifactParser:
        workspace = self.store.active_state()
        if workspace is None:
            raise RuntimeError("No active conversation to stream into")
        self._abandon_turn()
        origin = SyncOrigin.INCREMENTAL if workspace.files else SyncOrigin.INITIAL
        self.store.snapshot_prior(workspace.files)
        parser = StreamingArtifactParser(extra_denylist=self._extra_denylist)
        self._turn = _Turn(workspace.conversation_id, parser, origin)
        return parser

    def feed(self, chunk: str) -> list[Mutation]:
        turn = self._turn
        if turn is None:
            raise RuntimeError("feed() called outside of an assistant turn")
        mutations = turn.parser.feed(chunk)
        if turn.conversation_id != self.store.active_id:
            logger.debug("Dropping %d mutations for inactive conversation %s", len(mutations), turn.conversation_id)
            return []
        self.store.apply_mutation_batch(mutations, turn.origin)
        return mutations

    def end_turn(self, messages: list[dict[str, Any]] | None = None) -> str:
        turn, self._turn = self._turn, None
        if turn is None:
            return ""
        leftover = turn.parser.finish()
        if messages is not None and turn.conversation_id == self.store.active_id:
            self.gateway.schedule_save(SaveKind.CHAT, messages)
            self.gateway.schedule_save(SaveKind.ACTIVITY, datetime.now(UTC))
        return leftover

    async def stream(
        self,
        chunks: AsyncIterable[str],
        messages: list[dict[str, Any]] | None = None,
    ) -> list[Mutation]:
        self.begin_turn()
        turn = self._turn
        applied: list[Mutation] = []
        try:
            async for chunk in chunks:
                if self._turn is not turn:
                    logger.info("Turn for %s was abandoned mid-stream", turn.conversation_id)
                    break
                applied.extend(self.feed(chunk))
        finally:
            if self._turn is turn:
                self.end_turn(messages)
        return applied

    def _abandon_turn(self) -> None:
        if self._turn is not None:
            leftover = self._turn.parser.finish()
            logger.debug("Abandoning turn for %s (%d chars unparsed)", self._turn.conversation_id, len(leftover))
            self._turn = None

    # ------------------------------------------------------------------
    # Store notifications
    # ------------------------------------------------------------------

    def _on_change(self, change: WorkspaceChange) -> None:
        conversation_id = change.conversation_id
        if conversation_id is None or conversation_id != self.store.active_id:
            return
        if change.kind in _MOUNT_KINDS:
            self.bridge.schedule_mount(conversation_id, full_replace=change.kind != "files")
        if change.kind in _SAVE_KINDS and not self.store.bulk_loading:
            workspace = self.store.active_state()
            if workspace is not None:
                self.gateway.schedule_save(SaveKind.WORKSPACE, workspace.builder_state())
