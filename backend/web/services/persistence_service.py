"""PersistenceGateway — debounced, health-guarded project saves.

One restartable timer per (project_id, kind). When a timer fires the payload is
applied to the locally cached record first, then written to the backend only
if a short liveness probe succeeds. Failures are logged once per outage and
never retried: the next natural save supersedes them. There is no outbox, so a
save that fires during an outage only survives in memory.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from backend.web.services.binding_service import ProjectBindingService
from core.scheduler import CoalescingScheduler
from storage.interfaces import BackendError, ProjectRepo

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DEBOUNCE_SEC = 1.5
DEFAULT_PROBE_TIMEOUT_SEC = 0.7


class SaveKind(StrEnum):
    CHAT = "chat"
    WORKSPACE = "workspace"
    ACTIVITY = "activity"


SaveKey = tuple[str, SaveKind]


class PersistenceGateway:
    def __init__(
        self,
        repo: ProjectRepo,
        binding: ProjectBindingService,
        *,
        scheduler: CoalescingScheduler | None = None,
        debounce_sec: float = DEFAULT_SAVE_DEBOUNCE_SEC,
        probe_timeout_sec: float = DEFAULT_PROBE_TIMEOUT_SEC,
    ):
        self._repo = repo
        self._binding = binding
        self._scheduler = scheduler or CoalescingScheduler("save")
        self.debounce_sec = debounce_sec
        self.probe_timeout_sec = probe_timeout_sec
        self._seq = itertools.count(1)
        self._applied: dict[SaveKey, int] = {}
        self._locks: dict[SaveKey, asyncio.Lock] = {}
        self._outage = False
        self._no_credential_logged = False

    @property
    def in_outage(self) -> bool:
        return self._outage

    def schedule_save(self, kind: SaveKind | str, payload: Any, project_id: str | None = None) -> int:
        """Queue ``payload``; returns its sequence number (0 if nothing is bound)."""
        kind = SaveKind(kind)
        if project_id is None:
            record = self._binding.current
            if record is None:
                logger.debug("No project bound, dropping %s save", kind)
                return 0
            project_id = record.id
        seq = next(self._seq)
        key: SaveKey = (project_id, kind)
        self._scheduler.schedule(key, self.debounce_sec, lambda: self._save(key, seq, payload))
        return seq

    def pending(self) -> list[SaveKey]:
        return list(self._scheduler.pending())

    def cancel_for(self, project_id: str) -> int:
        cancelled = self._scheduler.cancel_where(lambda key: key[0] == project_id)
        # a held lock still guards an in-flight write for that key
        for key in [k for k in self._locks if k[0] == project_id and not self._locks[k].locked()]:
            del self._locks[key]
            self._applied.pop(key, None)
        for key in [k for k in self._applied if k[0] == project_id and k not in self._locks]:
            del self._applied[key]
        return cancelled

    async def flush(self) -> int:
        """Run every pending save now (shutdown path)."""
        return await self._scheduler.flush()

    def _lock_for(self, key: SaveKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _is_active(self, project_id: str) -> bool:
        current = self._binding.current
        return current is not None and current.id == project_id

    async def _save(self, key: SaveKey, seq: int, payload: Any) -> None:
        project_id, kind = key
        async with self._lock_for(key):
            if seq <= self._applied.get(key, 0):
                logger.debug("Dropping stale %s save #%d for %s", kind, seq, project_id)
                return
            if not self._is_active(project_id):
                logger.debug("Project %s no longer active, skipping %s save", project_id, kind)
                return
            self._applied[key] = seq
            record = self._binding.apply_local(project_id, kind, payload)

            if not self._repo.has_credential:
                if not self._no_credential_logged:
                    logger.warning("No backend credential configured; saves stay local")
                    self._no_credential_logged = True
                return
            if record is not None and record.local_only:
                logger.debug("Project %s is local-only, skipping remote %s save", project_id, kind)
                return
            if not await self._repo.check_health(self.probe_timeout_sec):
                self._mark_outage(f"health probe failed before {kind} save")
                return
            try:
                await self._write(project_id, kind, payload)
            except BackendError as exc:
                self._mark_outage(f"{kind} save failed: {exc}")
                return
            self._mark_recovered()

    async def _write(self, project_id: str, kind: SaveKind, payload: Any) -> None:
        if kind == SaveKind.CHAT:
            await self._repo.save_chat(project_id, list(payload))
        elif kind == SaveKind.WORKSPACE:
            await self._repo.save_builder_state(project_id, dict(payload))
        else:
            at = payload if isinstance(payload, datetime) else datetime.now(UTC)
            await self._repo.touch_activity(project_id, at)

    def _mark_outage(self, reason: str) -> None:
        if not self._outage:
            logger.warning("Project backend unavailable, keeping changes local: %s", reason)
            self._outage = True
        else:
            logger.debug("Project backend still unavailable: %s", reason)

    def _mark_recovered(self) -> None:
        if self._outage:
            logger.info("Project backend reachable again")
            self._outage = False
