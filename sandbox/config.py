"""Sandbox configuration.

Named configs live in ``~/.artisync/sandboxes/<name>.json``; "local" needs no
file. Priority: explicit name > ARTISYNC_SANDBOX env > "local".
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

SANDBOX_CONFIG_DIR = Path.home() / ".artisync" / "sandboxes"
DEFAULT_SANDBOX_ROOT = Path.home() / ".artisync" / "sandbox"


class LocalConfig(BaseModel):
    root_dir: str = str(DEFAULT_SANDBOX_ROOT)


class DockerConfig(BaseModel):
    image: str = "node:20-slim"
    mount_path: str = "/workspace"
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("mount_path")
    @classmethod
    def require_absolute_mount(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Docker mount_path must be absolute, got {v!r}")
        return v.rstrip("/") or "/"


class SandboxConfig(BaseModel):
    provider: str = "local"
    # @@@config-name-propagation - carries the config file stem through to logs and the factory
    name: str = "local"
    local: LocalConfig = Field(default_factory=LocalConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    shell: list[str] = Field(default_factory=lambda: ["/bin/sh"])

    @field_validator("shell")
    @classmethod
    def require_shell(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("Sandbox shell command must not be empty")
        return v

    @classmethod
    def load(cls, name: str, config_dir: Path | None = None) -> SandboxConfig:
        if name == "local":
            return cls()
        path = (config_dir or SANDBOX_CONFIG_DIR) / f"{name}.json"
        if not path.exists():
            raise FileNotFoundError(f"Sandbox config not found: {path}")
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls.model_validate({**data, "name": name})


def resolve_sandbox_name(cli_arg: str | None, env: Mapping[str, str] | None = None) -> str:
    env_map = env if env is not None else os.environ
    return cli_arg or env_map.get("ARTISYNC_SANDBOX") or "local"
