"""TerminalSessionManager — multiplexed interactive shells inside the sandbox.

Each session wraps one spawned shell process:

    created → initializing → ready ⇄ busy → closed

``create()`` returns the process id immediately and spawns in the background;
callers that need the shell await ``wait_ready()``. Output is fanned out to
subscribed handlers and, line by line, to an ``ErrorDetector`` whose findings
go to the error sink (normally ``ChatWorkspaceStore.push_error``).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import secrets
import string
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sandbox.base import SandboxProcess
from sandbox.error_detector import ErrorDetector
from sandbox.instance import SandboxInstance
from sandbox.lifecycle import TerminalSessionState, assert_terminal_transition
from sandbox.shell_output import split_complete_lines
from workspace.state import ErrorRecord

logger = logging.getLogger(__name__)

PROCESS_ID_ALPHABET = string.digits + string.ascii_lowercase
PROCESS_ID_LENGTH = 9

OutputHandler = Callable[[str], None]
ErrorSink = Callable[[ErrorRecord], None]


def generate_process_id() -> str:
    return "".join(secrets.choice(PROCESS_ID_ALPHABET) for _ in range(PROCESS_ID_LENGTH))


@dataclass
class TerminalSession:
    process_id: str
    seq: int
    created_at: float = field(default_factory=time.time)
    state: TerminalSessionState = TerminalSessionState.CREATED
    process: SandboxProcess | None = None
    handlers: list[OutputHandler] = field(default_factory=list)
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    start_task: asyncio.Task[None] | None = None
    pump_task: asyncio.Task[None] | None = None
    pending_line: str = ""
    error: BaseException | None = None

    def transition(self, target: TerminalSessionState, reason: str) -> None:
        assert_terminal_transition(self.state, target, reason=reason)
        self.state = target

    def to_dict(self) -> dict[str, Any]:
        return {
            "process_id": self.process_id,
            "state": str(self.state),
            "created_at": self.created_at,
        }


class TerminalSessionManager:
    def __init__(
        self,
        instance: SandboxInstance,
        *,
        shell: Sequence[str] = ("/bin/sh",),
        env: Mapping[str, str] | None = None,
        detector: ErrorDetector | None = None,
        error_sink: ErrorSink | None = None,
        scan_buffer_limit: int = 8192,
    ):
        self._instance = instance
        self._shell = tuple(shell)
        self._env = dict(env or {})
        self._detector = detector
        self._error_sink = error_sink
        self._scan_buffer_limit = scan_buffer_limit
        self._sessions: dict[str, TerminalSession] = {}
        self._issued: set[str] = set()
        self._seq = itertools.count()
        self.selected_id: str | None = None

    def set_error_sink(self, sink: ErrorSink | None) -> None:
        self._error_sink = sink

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, process_id: str) -> TerminalSession | None:
        return self._sessions.get(process_id)

    def _require(self, process_id: str) -> TerminalSession:
        session = self._sessions.get(process_id)
        if session is None:
            raise KeyError(f"Unknown terminal session: {process_id}")
        return session

    def list_sessions(self) -> list[TerminalSession]:
        return sorted(self._sessions.values(), key=lambda s: s.seq)

    def last(self) -> TerminalSession | None:
        sessions = self.list_sessions()
        return sessions[-1] if sessions else None

    def select(self, process_id: str) -> None:
        self._require(process_id)
        self.selected_id = process_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _allocate_id(self) -> str:
        while True:
            process_id = generate_process_id()
            if process_id not in self._issued:
                self._issued.add(process_id)
                return process_id

    def create(self) -> str:
        process_id = self._allocate_id()
        session = TerminalSession(process_id=process_id, seq=next(self._seq))
        self._sessions[process_id] = session
        self.selected_id = process_id
        session.start_task = asyncio.get_running_loop().create_task(
            self._start(session), name=f"terminal-start:{process_id}"
        )
        return process_id

    async def _start(self, session: TerminalSession) -> None:
        session.transition(TerminalSessionState.INITIALIZING, "spawn")
        process: SandboxProcess | None = None
        try:
            sandbox = await self._instance.get()
            process = await sandbox.spawn(self._shell, env=self._env)
            await process.wait_ready()
        except asyncio.CancelledError:
            # closed while starting; the session never owned the process
            if process is not None:
                await self._terminate(session.process_id, process)
            raise
        except Exception as exc:
            logger.error("Terminal %s failed to start: %s", session.process_id, exc)
            session.error = exc
            if process is not None:
                await self._terminate(session.process_id, process)
            await self._discard(session, reason="start_failed")
            return

        if session.state == TerminalSessionState.CLOSED:
            await self._terminate(session.process_id, process)
            return
        session.process = process
        session.transition(TerminalSessionState.READY, "process_ready")
        session.ready.set()
        session.pump_task = asyncio.get_running_loop().create_task(
            self._pump(session), name=f"terminal-pump:{session.process_id}"
        )
        logger.info("Terminal %s ready", session.process_id)

    async def wait_ready(self, process_id: str) -> TerminalSession:
        session = self._require(process_id)
        await session.ready.wait()
        if session.error is not None:
            raise session.error
        if session.state == TerminalSessionState.CLOSED:
            raise RuntimeError(f"Terminal session {process_id} closed before becoming ready")
        return session

    async def close(self, process_id: str) -> None:
        await self._discard(self._require(process_id), reason="closed_by_user")

    async def close_all(self) -> None:
        for session in self.list_sessions():
            await self._discard(session, reason="close_all")

    async def reset(self) -> str:
        """Close every session and open one fresh one."""
        await self.close_all()
        return self.create()

    async def _discard(self, session: TerminalSession, *, reason: str, terminate: bool = True) -> None:
        if self._sessions.get(session.process_id) is not session:
            return
        del self._sessions[session.process_id]
        if session.state != TerminalSessionState.CLOSED:
            session.transition(TerminalSessionState.CLOSED, reason)
        session.ready.set()
        session.handlers.clear()
        if self.selected_id == session.process_id:
            fallback = self.last()
            self.selected_id = fallback.process_id if fallback else None

        current = asyncio.current_task()
        for task in (session.start_task, session.pump_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        if terminate and session.process is not None:
            await self._terminate(session.process_id, session.process)
        logger.info("Terminal %s closed (%s)", session.process_id, reason)

    @staticmethod
    async def _terminate(process_id: str, process: SandboxProcess) -> None:
        try:
            await process.terminate()
        except Exception:
            logger.warning("Terminal %s did not terminate cleanly", process_id, exc_info=True)

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    async def write(self, process_id: str, data: str) -> None:
        session = await self.wait_ready(process_id)
        async with session.write_lock:
            if session.state == TerminalSessionState.CLOSED or session.process is None:
                raise RuntimeError(f"Terminal session {process_id} is closed")
            session.transition(TerminalSessionState.BUSY, "write")
            try:
                await session.process.write(data)
            finally:
                if session.state == TerminalSessionState.BUSY:
                    session.transition(TerminalSessionState.READY, "write_drained")

    def on_output(self, process_id: str, handler: OutputHandler) -> Callable[[], None]:
        session = self._require(process_id)
        session.handlers.append(handler)

        def unsubscribe() -> None:
            if handler in session.handlers:
                session.handlers.remove(handler)

        return unsubscribe

    async def _pump(self, session: TerminalSession) -> None:
        process = session.process
        assert process is not None
        try:
            while True:
                chunk = await process.read()
                if not chunk:
                    break
                self._dispatch(session, chunk)
                self._scan(session, chunk)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Terminal %s output stream failed", session.process_id, exc_info=True)
        if session.pending_line:
            self._scan(session, "\n")
        await self._discard(session, reason="process_exited", terminate=False)

    def _dispatch(self, session: TerminalSession, chunk: str) -> None:
        for handler in list(session.handlers):
            try:
                handler(chunk)
            except Exception:
                logger.exception("Output handler for terminal %s failed", session.process_id)

    def _scan(self, session: TerminalSession, chunk: str) -> None:
        if self._detector is None or self._error_sink is None:
            return
        try:
            lines, session.pending_line = split_complete_lines(
                session.pending_line, chunk, limit=self._scan_buffer_limit
            )
            if not lines:
                return
            records = self._detector.detect("\n".join(lines))
        except Exception:
            logger.debug("Error scan failed for terminal %s", session.process_id, exc_info=True)
            return
        for record in records:
            try:
                self._error_sink(record)
            except Exception:
                logger.exception("Error sink rejected record from terminal %s", session.process_id)
