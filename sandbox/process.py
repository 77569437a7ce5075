"""SandboxProcess backed by a host asyncio subprocess.

Used directly by LocalSandbox and, through ``docker exec -i``, by DockerSandbox.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

from sandbox.base import SandboxProcess

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096
TERMINATE_GRACE_SEC = 2.0


class SubprocessProcess(SandboxProcess):
    def __init__(self, proc: asyncio.subprocess.Process):
        self._proc = proc
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @classmethod
    async def start(
        cls,
        command: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> SubprocessProcess:
        merged = {**os.environ, **(env or {})}
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(cwd) if cwd is not None else None,
            env=merged,
        )
        logger.debug("Spawned %s (pid=%s)", list(command), proc.pid)
        return cls(proc)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def read(self) -> str:
        if self._proc.stdout is None:
            return ""
        while True:
            data = await self._proc.stdout.read(READ_CHUNK_SIZE)
            if not data:
                return self._decoder.decode(b"", final=True)
            text = self._decoder.decode(data)
            # a chunk holding only part of a multibyte character decodes to ""
            if text:
                return text

    async def write(self, data: str) -> None:
        if self._proc.stdin is None or self._proc.stdin.is_closing():
            raise RuntimeError(f"Process {self._proc.pid} no longer accepts input")
        self._proc.stdin.write(data.encode("utf-8"))
        await self._proc.stdin.drain()

    async def terminate(self) -> None:
        if self._proc.returncode is not None:
            return
        if self._proc.stdin is not None and not self._proc.stdin.is_closing():
            self._proc.stdin.close()
        try:
            self._proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self._proc.wait(), TERMINATE_GRACE_SEC)
        except TimeoutError:
            logger.warning("Process %s ignored SIGTERM, killing", self._proc.pid)
            self._proc.kill()
            await self._proc.wait()
