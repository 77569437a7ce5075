"""Per-conversation workspaces: files, sync flags and the error queue."""

from workspace.errors import DEFAULT_ERROR_CAPACITY, ErrorQueue
from workspace.state import (
    ConversationId,
    ErrorRecord,
    ErrorSeverity,
    SyncOrigin,
    WorkspaceChange,
    WorkspaceState,
)
from workspace.store import ChatWorkspaceStore

__all__ = [
    "ChatWorkspaceStore",
    "ConversationId",
    "DEFAULT_ERROR_CAPACITY",
    "ErrorQueue",
    "ErrorRecord",
    "ErrorSeverity",
    "SyncOrigin",
    "WorkspaceChange",
    "WorkspaceState",
]
