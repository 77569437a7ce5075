"""LocalSandbox — a host directory acting as the sandbox filesystem."""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path

from sandbox.base import Sandbox, SandboxProcess
from sandbox.instance import SandboxBootError
from sandbox.process import SubprocessProcess


class LocalSandbox(Sandbox):
    """Every path is resolved under ``root_dir``; escaping it raises ValueError."""

    def __init__(self, root_dir: str | Path):
        self._root = Path(root_dir).expanduser()

    @property
    def name(self) -> str:
        return "local"

    @property
    def working_dir(self) -> str:
        return str(self._root)

    async def boot(self) -> None:
        try:
            await asyncio.to_thread(self._root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise SandboxBootError(f"Cannot create local sandbox root {self._root}: {e}") from e
        self._root = self._root.resolve()

    def resolve(self, path: str) -> Path:
        root = self._root.resolve()
        target = (root / path.lstrip("/")).resolve()
        if target != root and not target.is_relative_to(root):
            raise ValueError(f"Path escapes sandbox root: {path}")
        return target

    async def mkdir(self, path: str) -> None:
        await asyncio.to_thread(self.resolve(path).mkdir, parents=True, exist_ok=True)

    async def write_file(self, path: str, content: str) -> None:
        target = self.resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)

    async def read_file(self, path: str) -> str:
        return await asyncio.to_thread(self.resolve(path).read_text, encoding="utf-8")

    async def remove(self, path: str) -> None:
        target = self.resolve(path)
        if target == self._root.resolve():
            raise ValueError("Refusing to remove the sandbox root")

        def _remove() -> None:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)

        await asyncio.to_thread(_remove)

    async def spawn(
        self,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> SandboxProcess:
        return await SubprocessProcess.start(command, cwd=self._root, env=env)
