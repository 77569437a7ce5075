"""Sandbox — the execution environment the workspace is mirrored into.

Usage:
    from sandbox import SandboxInstance, create_sandbox

    instance = SandboxInstance(lambda: create_sandbox(settings.sandbox))
    sbx = await instance.get()
"""

from __future__ import annotations

from sandbox.base import Sandbox, SandboxProcess
from sandbox.config import SandboxConfig, resolve_sandbox_name
from sandbox.instance import (
    SandboxBootError,
    SandboxFatalError,
    SandboxInstance,
    SandboxLimitError,
)

SUPPORTED_PROVIDERS = ("local", "docker")


def create_sandbox(config: SandboxConfig, root_dir: str | None = None) -> Sandbox:
    """Build an unbooted Sandbox for ``config.provider``.

    ``root_dir`` overrides ``config.local.root_dir`` for the local provider.
    Provider modules are imported lazily so the docker CLI wrapper is only
    loaded when it is configured.
    """
    if config.provider == "local":
        from sandbox.local import LocalSandbox

        return LocalSandbox(root_dir or config.local.root_dir)
    if config.provider == "docker":
        from sandbox.docker import DockerSandbox

        return DockerSandbox(config.docker)
    raise ValueError(
        f"Unknown sandbox provider: {config.provider} (config {config.name!r}). "
        f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )


__all__ = [
    "SUPPORTED_PROVIDERS",
    "Sandbox",
    "SandboxBootError",
    "SandboxConfig",
    "SandboxFatalError",
    "SandboxInstance",
    "SandboxLimitError",
    "SandboxProcess",
    "create_sandbox",
    "resolve_sandbox_name",
]
