"""Registry of per-conversation workspaces with sync bookkeeping.

Every operation acts on the active conversation and silently does nothing when
no conversation is active. Listeners are notified synchronously after each
mutation; they are expected to schedule work rather than perform I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType

from artifacts.parser import Mutation
from workspace.errors import DEFAULT_ERROR_CAPACITY, ErrorQueue
from workspace.state import (
    ConversationId,
    ErrorRecord,
    SyncOrigin,
    WorkspaceChange,
    WorkspaceState,
)

logger = logging.getLogger(__name__)

FOLDER_PLACEHOLDER = "index.tsx"

ChangeListener = Callable[[WorkspaceChange], None]


class ChatWorkspaceStore:
    def __init__(self, *, error_capacity: int = DEFAULT_ERROR_CAPACITY):
        self._states: dict[ConversationId, WorkspaceState] = {}
        self._active_id: ConversationId | None = None
        self._errors = ErrorQueue(error_capacity)
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def active_id(self) -> ConversationId | None:
        return self._active_id

    def active_state(self) -> WorkspaceState | None:
        if self._active_id is None:
            return None
        return self._states.get(self._active_id)

    def get_state(self, conversation_id: ConversationId) -> WorkspaceState | None:
        return self._states.get(conversation_id)

    def conversation_ids(self) -> list[ConversationId]:
        return list(self._states)

    def switch_conversation(self, conversation_id: ConversationId) -> WorkspaceState:
        if not conversation_id:
            raise ValueError("conversation_id is required")
        state = self._states.get(conversation_id)
        if state is None:
            state = WorkspaceState(conversation_id=conversation_id)
            self._states[conversation_id] = state
        if self._active_id != conversation_id:
            self._active_id = conversation_id
            self._emit("switched")
        return state

    def clear_conversation(self, conversation_id: ConversationId) -> None:
        if self._states.pop(conversation_id, None) is None:
            return
        if self._active_id == conversation_id:
            self._active_id = None
        self._emit("cleared", conversation_id=conversation_id)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(
        self,
        kind: str,
        paths: Iterable[str] = (),
        *,
        conversation_id: ConversationId | None = None,
    ) -> None:
        change = WorkspaceChange(
            conversation_id=conversation_id if conversation_id is not None else self._active_id,
            kind=kind,
            paths=tuple(paths),
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Workspace listener failed on %s change", kind)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def apply_mutation_batch(
        self,
        batch: Iterable[Mutation],
        origin: SyncOrigin | str,
    ) -> list[str]:
        """Write ``batch`` into the active workspace and flag paths for sync.

        INITIAL marks every path as part of the first payload. INCREMENTAL
        flags a path for incremental sync only when it is not already pending
        as part of the initial payload.
        """
        origin = SyncOrigin(origin)
        state = self.active_state()
        if state is None:
            return []
        touched: list[str] = []
        for mutation in batch:
            state.files[mutation.path] = mutation.content
            if origin == SyncOrigin.INITIAL:
                state.needs_initial_sync[mutation.path] = True
                state.needs_incremental_sync.pop(mutation.path, None)
            elif not state.needs_initial_sync.get(mutation.path, False):
                state.needs_incremental_sync[mutation.path] = True
            if mutation.path not in touched:
                touched.append(mutation.path)
        if touched:
            self._emit("files", touched)
        return touched

    def get_content(self, path: str) -> str:
        state = self.active_state()
        if state is None:
            return ""
        return state.files.get(path, "")

    def list_paths(self) -> list[str]:
        state = self.active_state()
        return list(state.files) if state else []

    def files(self) -> dict[str, str]:
        state = self.active_state()
        return dict(state.files) if state else {}

    def update_content(self, path: str, content: str) -> None:
        self.apply_mutation_batch([Mutation(path, content)], SyncOrigin.INCREMENTAL)

    def rename(self, old_path: str, new_path: str) -> bool:
        state = self.active_state()
        if state is None or old_path not in state.files or old_path == new_path:
            return False
        state.files[new_path] = state.files.pop(old_path)
        state.needs_initial_sync.pop(old_path, None)
        state.needs_incremental_sync.pop(old_path, None)
        if not state.needs_initial_sync.get(new_path, False):
            state.needs_incremental_sync[new_path] = True
        if state.selected_path == old_path:
            state.selected_path = new_path
        self._emit("renamed", [old_path, new_path])
        return True

    def delete(self, path: str) -> list[str]:
        """Remove ``path`` and everything beneath ``path/``."""
        state = self.active_state()
        if state is None:
            return []
        prefix = path.rstrip("/") + "/"
        removed = [p for p in state.files if p == path or p.startswith(prefix)]
        for p in removed:
            del state.files[p]
            state.needs_initial_sync.pop(p, None)
            state.needs_incremental_sync.pop(p, None)
        if state.selected_path in removed:
            state.selected_path = ""
        if removed:
            self._emit("removed", removed)
        return removed

    def create_folder(self, path: str) -> str | None:
        """Seed an empty placeholder so the folder exists. No-op if non-empty."""
        state = self.active_state()
        if state is None:
            return None
        prefix = path.rstrip("/") + "/"
        if any(p.startswith(prefix) for p in state.files):
            return None
        placeholder = prefix + FOLDER_PLACEHOLDER
        self.update_content(placeholder, "")
        return placeholder

    def replace_files(self, files: Mapping[str, str], *, reset_flags: bool = True) -> None:
        state = self.active_state()
        if state is None:
            return
        state.files = dict(files)
        if reset_flags:
            state.needs_initial_sync = {}
            state.needs_incremental_sync = {}
        self._emit("replaced", state.files)

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    def reset_sync_flags(self) -> None:
        state = self.active_state()
        if state is None:
            return
        if not state.needs_initial_sync and not state.needs_incremental_sync:
            return
        state.needs_initial_sync = {}
        state.needs_incremental_sync = {}
        self._emit("sync_flags")

    def mark_synced(self, written: Mapping[str, str]) -> list[str]:
        """Clear flags for paths whose live content still matches ``written``."""
        state = self.active_state()
        if state is None:
            return []
        cleared: list[str] = []
        for path, content in written.items():
            if state.files.get(path) != content:
                continue
            flagged = state.needs_initial_sync.pop(path, False)
            flagged = state.needs_incremental_sync.pop(path, False) or flagged
            if flagged:
                cleared.append(path)
        if cleared:
            self._emit("sync_flags", cleared)
        return cleared

    def snapshot_prior(self, files: Mapping[str, str]) -> None:
        state = self.active_state()
        if state is None:
            return
        state.prior_snapshot = MappingProxyType(dict(files))
        self._emit("snapshot", state.prior_snapshot)

    def set_selected_path(self, path: str) -> None:
        state = self.active_state()
        if state is None or state.selected_path == path:
            return
        state.selected_path = path
        self._emit("selection", [path] if path else [])

    def set_project_root(self, root: str) -> None:
        state = self.active_state()
        if state is None or state.project_root == root:
            return
        state.project_root = root
        self._emit("project_root")

    # ------------------------------------------------------------------
    # Errors (process-wide, not scoped to a conversation)
    # ------------------------------------------------------------------

    @property
    def bulk_loading(self) -> bool:
        return self._errors.bulk_loading

    @contextmanager
    def bulk_load(self) -> Iterator[None]:
        with self._errors.bulk_load():
            yield

    @property
    def errors(self) -> list[ErrorRecord]:
        return self._errors.snapshot()

    def push_error(self, record: ErrorRecord) -> None:
        if self._errors.push(record):
            self._emit("errors")

    def remove_error(self, index: int) -> ErrorRecord:
        record = self._errors.remove(index)
        self._emit("errors")
        return record

    def clear_errors(self) -> None:
        if len(self._errors):
            self._errors.clear()
            self._emit("errors")
