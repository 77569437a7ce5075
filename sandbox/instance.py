"""Process-wide sandbox singleton with a single in-flight boot.

Only one sandbox may exist per process. Concurrent callers of ``get()`` share
one boot task. A failed boot is sticky: further ``get()`` calls raise
``SandboxLimitError`` rather than spawning a second instance, until someone
calls ``reset()`` deliberately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from sandbox.base import Sandbox
from sandbox.lifecycle import SandboxState, assert_sandbox_transition

logger = logging.getLogger(__name__)


class SandboxFatalError(RuntimeError):
    """Sandbox cannot be used; blocks further sync until resolved."""


class SandboxBootError(SandboxFatalError):
    pass


class SandboxLimitError(SandboxFatalError):
    pass


SandboxFactory = Callable[[], Sandbox]


class SandboxInstance:
    def __init__(self, factory: SandboxFactory):
        self._factory = factory
        self._state = SandboxState.NONE
        self._sandbox: Sandbox | None = None
        self._boot_task: asyncio.Task[Sandbox] | None = None
        self._last_error: BaseException | None = None

    @property
    def state(self) -> SandboxState:
        return self._state

    @property
    def sandbox(self) -> Sandbox | None:
        return self._sandbox

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    def _transition(self, target: SandboxState, reason: str) -> None:
        assert_sandbox_transition(self._state, target, reason=reason)
        self._state = target

    async def get(self) -> Sandbox:
        if self._sandbox is not None:
            return self._sandbox
        if self._boot_task is None:
            if self._state == SandboxState.FAILED:
                raise SandboxLimitError(
                    "Sandbox already failed to boot in this process; refusing to start another instance "
                    f"(last error: {self._last_error}). Call reset() after resolving the cause."
                )
            self._transition(SandboxState.BOOTING, "get")
            self._boot_task = asyncio.get_running_loop().create_task(self._boot(), name="sandbox-boot")
        return await asyncio.shield(self._boot_task)

    async def _boot(self) -> Sandbox:
        sandbox = self._factory()
        try:
            await sandbox.boot()
        except SandboxFatalError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            self._fail(exc)
            raise SandboxBootError(f"Sandbox boot failed ({sandbox.name}): {exc}") from exc
        finally:
            self._boot_task = None
        self._sandbox = sandbox
        self._transition(SandboxState.READY, "boot_ok")
        logger.info("Sandbox %s ready at %s", sandbox.name, sandbox.working_dir)
        return sandbox

    def _fail(self, exc: BaseException) -> None:
        self._last_error = exc
        self._transition(SandboxState.FAILED, "boot_failed")
        logger.error("Sandbox boot failed: %s", exc)

    def reset(self) -> None:
        """Leave FAILED so the next get() may boot again."""
        if self._state != SandboxState.FAILED:
            return
        self._transition(SandboxState.NONE, "reset")
        self._last_error = None

    async def destroy(self) -> None:
        sandbox, self._sandbox = self._sandbox, None
        if sandbox is None:
            return
        self._transition(SandboxState.NONE, "destroy")
        try:
            await sandbox.close()
        except Exception:
            logger.exception("Sandbox %s failed to close cleanly", sandbox.name)
