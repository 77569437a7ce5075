"""DockerSandbox — one long-lived container driven through the docker CLI.

Notes:
- Requires the docker CLI on the host.
- The container runs ``sleep infinity``; files are written and terminals are
  attached with ``docker exec``.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import uuid
from collections.abc import Mapping, Sequence

from sandbox.base import Sandbox, SandboxProcess
from sandbox.config import DockerConfig
from sandbox.instance import SandboxBootError, SandboxLimitError
from sandbox.process import SubprocessProcess

logger = logging.getLogger(__name__)


class DockerSandbox(Sandbox):
    def __init__(self, config: DockerConfig):
        self._config = config
        self._container_id: str | None = None

    @property
    def name(self) -> str:
        return "docker"

    @property
    def working_dir(self) -> str:
        return self._config.mount_path

    @property
    def container_id(self) -> str | None:
        return self._container_id

    async def _run(self, args: Sequence[str], *, stdin: str | None = None) -> tuple[int, str, str]:
        proc = await asyncio.create_subprocess_exec(
            "docker",
            *args,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        out, err = await proc.communicate(stdin.encode("utf-8") if stdin is not None else None)
        return proc.returncode or 0, out.decode("utf-8", "replace"), err.decode("utf-8", "replace")

    def _require_container(self) -> str:
        if not self._container_id:
            raise RuntimeError("Docker sandbox is not booted")
        return self._container_id

    def resolve(self, path: str) -> str:
        root = self._config.mount_path.rstrip("/") or "/"
        target = posixpath.normpath(posixpath.join(root, path.lstrip("/")))
        if target != root and not target.startswith(root.rstrip("/") + "/"):
            raise ValueError(f"Path escapes sandbox root: {path}")
        return target

    async def boot(self) -> None:
        name = f"artisync-{uuid.uuid4().hex[:12]}"
        cmd = ["run", "-d", "--name", name, "--label", "artisync.sandbox=1"]
        for key, value in self._config.env.items():
            cmd.extend(["-e", f"{key}={value}"])
        cmd.extend(["-w", self._config.mount_path, self._config.image, "sleep", "infinity"])
        try:
            code, out, err = await self._run(cmd)
        except FileNotFoundError as e:
            raise SandboxBootError("docker CLI not found on PATH") from e
        if code != 0 or not out.strip():
            message = err.strip() or "no container id returned"
            if "Unable to create more instances" in message:
                raise SandboxLimitError(message)
            raise SandboxBootError(f"docker run failed: {message}")
        self._container_id = out.strip()
        code, _, err = await self._run(["exec", self._container_id, "mkdir", "-p", self._config.mount_path])
        if code != 0:
            raise SandboxBootError(f"Cannot prepare {self._config.mount_path}: {err.strip()}")
        logger.info("Docker sandbox container %s started from %s", name, self._config.image)

    async def _exec(self, *args: str, stdin: str | None = None) -> str:
        container = self._require_container()
        flags = ["-i"] if stdin is not None else []
        code, out, err = await self._run(["exec", *flags, container, *args], stdin=stdin)
        if code != 0:
            raise RuntimeError(f"docker exec {args[0]} failed ({code}): {err.strip()}")
        return out

    async def mkdir(self, path: str) -> None:
        await self._exec("mkdir", "-p", self.resolve(path))

    async def write_file(self, path: str, content: str) -> None:
        target = self.resolve(path)
        await self._exec("sh", "-c", 'mkdir -p "$(dirname "$1")" && cat > "$1"', "sh", target, stdin=content)

    async def read_file(self, path: str) -> str:
        return await self._exec("cat", self.resolve(path))

    async def remove(self, path: str) -> None:
        target = self.resolve(path)
        if target == self.resolve(""):
            raise ValueError("Refusing to remove the sandbox root")
        await self._exec("rm", "-rf", target)

    async def spawn(
        self,
        command: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> SandboxProcess:
        container = self._require_container()
        args = ["docker", "exec", "-i", "-w", self._config.mount_path]
        for key, value in (env or {}).items():
            args.extend(["-e", f"{key}={value}"])
        args.append(container)
        args.extend(command)
        return await SubprocessProcess.start(args)

    async def close(self) -> None:
        if not self._container_id:
            return
        container, self._container_id = self._container_id, None
        code, _, err = await self._run(["rm", "-f", container])
        if code != 0:
            logger.warning("docker rm -f %s failed: %s", container, err.strip())
