"""Per-conversation workspace state and the value types that flow through it."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

ConversationId = str


class SyncOrigin(StrEnum):
    """Where a mutation batch came from.

    INITIAL: the assistant turn that produced the workspace; the sandbox still
    needs the whole payload.
    INCREMENTAL: an edit on top of an already-synced workspace.
    """

    INITIAL = "initial"
    INCREMENTAL = "incremental"


class ErrorSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ErrorRecord:
    message: str
    code: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    occurrence_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "severity": str(self.severity),
            "occurrence_count": self.occurrence_count,
        }


def _empty_snapshot() -> Mapping[str, str]:
    return MappingProxyType({})


@dataclass
class WorkspaceState:
    conversation_id: ConversationId
    files: dict[str, str] = field(default_factory=dict)
    # Replaced wholesale by snapshot_prior, never edited in place.
    prior_snapshot: Mapping[str, str] = field(default_factory=_empty_snapshot)
    needs_initial_sync: dict[str, bool] = field(default_factory=dict)
    needs_incremental_sync: dict[str, bool] = field(default_factory=dict)
    selected_path: str = ""
    project_root: str = ""

    def builder_state(self) -> dict[str, Any]:
        """Serializable form persisted as the project's builder state."""
        return {
            "files": dict(self.files),
            "prior_files": dict(self.prior_snapshot),
            "selected_path": self.selected_path,
            "project_root": self.project_root,
        }

    def pending_paths(self) -> list[str]:
        flagged = {p for p, v in self.needs_initial_sync.items() if v}
        flagged.update(p for p, v in self.needs_incremental_sync.items() if v)
        return sorted(flagged)


@dataclass(frozen=True)
class WorkspaceChange:
    """Emitted synchronously after every store mutation.

    kind: files | renamed | removed | replaced | sync_flags | snapshot | selection |
    project_root | switched | cleared | errors
    """

    conversation_id: ConversationId | None
    kind: str
    paths: tuple[str, ...] = ()
