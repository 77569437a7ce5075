"""WorkspaceSyncBridge — mirror the active workspace into the sandbox.

Mounts are debounced per conversation. When a timer fires it re-reads the live
file map and re-checks that the conversation is still active, so a burst of
mutations or a quick conversation switch costs at most one mount.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from collections.abc import Callable

from core.scheduler import CoalescingScheduler
from sandbox.base import Sandbox
from sandbox.instance import SandboxFatalError, SandboxInstance
from workspace.state import ConversationId, WorkspaceState
from workspace.store import ChatWorkspaceStore

logger = logging.getLogger(__name__)

DEFAULT_MOUNT_DEBOUNCE_SEC = 0.3

FatalHandler = Callable[[SandboxFatalError], None]


def _sandbox_path(path: str) -> str:
    return posixpath.normpath(path.lstrip("/"))


class WorkspaceSyncBridge:
    def __init__(
        self,
        store: ChatWorkspaceStore,
        instance: SandboxInstance,
        *,
        scheduler: CoalescingScheduler | None = None,
        debounce_sec: float = DEFAULT_MOUNT_DEBOUNCE_SEC,
        on_fatal: FatalHandler | None = None,
    ):
        self._store = store
        self._instance = instance
        self._scheduler = scheduler or CoalescingScheduler("mount")
        self.debounce_sec = debounce_sec
        self._on_fatal = on_fatal
        self.fatal_error: SandboxFatalError | None = None
        self._full_replace: set[ConversationId] = set()
        # sandbox paths this bridge has written into the current sandbox
        self._mounted: set[str] = set()
        self._mounted_in: Sandbox | None = None
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(conversation_id: ConversationId) -> tuple[str, ConversationId]:
        return ("mount", conversation_id)

    def schedule_mount(self, conversation_id: ConversationId, *, full_replace: bool = False) -> None:
        if full_replace:
            self._full_replace.add(conversation_id)
        self._scheduler.schedule(
            self._key(conversation_id),
            self.debounce_sec,
            lambda: self._mount_if_active(conversation_id),
        )

    def cancel(self, conversation_id: ConversationId) -> bool:
        self._full_replace.discard(conversation_id)
        return self._scheduler.cancel(self._key(conversation_id))

    def is_pending(self, conversation_id: ConversationId) -> bool:
        return self._scheduler.is_pending(self._key(conversation_id))

    async def shutdown(self) -> None:
        self._scheduler.close()
        self._full_replace.clear()
        await self._instance.destroy()

    def clear_fatal(self) -> None:
        """Unblock mounting once the operator has dealt with the failure."""
        self.fatal_error = None
        self._instance.reset()

    async def _mount_if_active(self, conversation_id: ConversationId) -> None:
        full_replace = conversation_id in self._full_replace
        self._full_replace.discard(conversation_id)
        workspace = self._store.active_state()
        if workspace is None or workspace.conversation_id != conversation_id:
            logger.debug("Skipping mount for inactive conversation %s", conversation_id)
            return
        try:
            await self.mount(workspace, full_replace=full_replace)
        except SandboxFatalError as exc:
            logger.error("Mount for %s blocked: %s", conversation_id, exc)
            if self._on_fatal is not None:
                try:
                    self._on_fatal(exc)
                except Exception:
                    logger.exception("Sandbox fatal-error handler failed")

    async def mount(self, workspace: WorkspaceState, *, full_replace: bool = False) -> int:
        """Write ``workspace.files`` into the sandbox. Returns files written.

        Passes are serialized. A pass stops early once its conversation is no
        longer the active one; every path it wrote is already tracked, so the
        next full-replace pass removes it.
        """
        async with self._lock:
            return await self._mount_locked(workspace, full_replace)

    async def _mount_locked(self, workspace: WorkspaceState, full_replace: bool) -> int:
        if self.fatal_error is not None:
            raise self.fatal_error
        conversation_id = workspace.conversation_id
        if self._store.active_id != conversation_id:
            logger.debug("Skipping mount for inactive conversation %s", conversation_id)
            return 0
        try:
            sandbox = await self._instance.get()
        except SandboxFatalError as exc:
            self.fatal_error = exc
            raise
        if sandbox is not self._mounted_in:
            self._mounted = set()
            self._mounted_in = sandbox

        files = dict(workspace.files)
        written: dict[str, str] = {}
        current: set[str] = set()
        created_dirs: set[str] = set()
        for path, content in files.items():
            if self._store.active_id != conversation_id:
                logger.info(
                    "Mount for %s stopped after %d of %d files: conversation switched",
                    conversation_id,
                    len(written),
                    len(files),
                )
                return len(written)
            target = _sandbox_path(path)
            parent = posixpath.dirname(target)
            if parent and parent not in created_dirs:
                await sandbox.mkdir(parent)
                created_dirs.add(parent)
            await sandbox.write_file(target, content)
            self._mounted.add(target)
            current.add(target)
            written[path] = content

        if full_replace:
            for stale in sorted(self._mounted - current):
                if self._store.active_id != conversation_id:
                    break
                await sandbox.remove(stale)
                self._mounted.discard(stale)

        if self._store.active_id == conversation_id:
            # edits that landed while writing keep their flags
            self._store.mark_synced(written)
        logger.debug(
            "Mounted %d files for %s (full_replace=%s)",
            len(written),
            conversation_id,
            full_replace,
        )
        return len(written)
