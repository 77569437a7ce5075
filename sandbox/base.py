"""Sandbox ABC — the execution target the workspace is mirrored into.

A Sandbox bundles two surfaces:
- filesystem: mkdir / write_file / read_file / remove, paths relative to working_dir
- processes:  spawn() → SandboxProcess (an interactive byte stream)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence


class SandboxProcess(ABC):
    """A running process inside the sandbox with a bidirectional text stream."""

    @property
    @abstractmethod
    def returncode(self) -> int | None:
        """Exit code, or None while running."""
        ...

    @abstractmethod
    async def read(self) -> str:
        """Next chunk of output. Returns "" once the stream is exhausted."""
        ...

    @abstractmethod
    async def write(self, data: str) -> None: ...

    async def wait_ready(self) -> None:
        """Resolve once the process accepts input. Default: ready on spawn."""
        return None

    @abstractmethod
    async def terminate(self) -> None: ...


class Sandbox(ABC):
    """Abstract sandbox — one instance per process, owned by SandboxInstance."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier: 'local', 'docker', ..."""
        ...

    @property
    @abstractmethod
    def working_dir(self) -> str:
        """Directory that workspace paths are resolved against."""
        ...

    @abstractmethod
    async def boot(self) -> None: ...

    @abstractmethod
    async def mkdir(self, path: str) -> None:
        """Create ``path`` and its parents. Existing directories are fine."""
        ...

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None: ...

    @abstractmethod
    async def read_file(self, path: str) -> str: ...

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete a file or directory tree. Missing paths are ignored."""
        ...

    @abstractmethod
    async def spawn(
        self,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> SandboxProcess: ...

    async def close(self) -> None:
        """Release the sandbox. Default: no-op."""
        return None
