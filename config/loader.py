"""Three-tier configuration loader.

Configuration priority (highest to lowest):
1. Explicit overrides
2. ARTISYNC_* environment variables
3. Project config (<workspace>/.artisync/config.json)
4. User config (~/.artisync/config.json)
5. System defaults (config/defaults/config.json)
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from config.schema import ArtisyncSettings
from sandbox.config import SandboxConfig, resolve_sandbox_name

logger = logging.getLogger(__name__)

# env var -> (group, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "ARTISYNC_BACKEND_URL": ("storage", "backend_url"),
    "ARTISYNC_BACKEND_TOKEN": ("storage", "token"),
    "ARTISYNC_STORAGE_STRATEGY": ("storage", "strategy"),
    "ARTISYNC_SUPABASE_CLIENT_FACTORY": ("storage", "supabase_client_factory"),
    "ARTISYNC_USER_ID": ("storage", "user_id"),
    "ARTISYNC_SANDBOX_PROVIDER": ("sandbox", "provider"),
}


class ConfigLoader:
    def __init__(
        self,
        workspace_root: str | Path | None = None,
        *,
        home: Path | None = None,
        env: Mapping[str, str] | None = None,
    ):
        self.workspace_root = Path(workspace_root).resolve() if workspace_root else None
        self._home = home or Path.home()
        self._env = env if env is not None else os.environ
        self._system_defaults_dir = Path(__file__).parent / "defaults"

    def load(self, overrides: dict[str, Any] | None = None) -> ArtisyncSettings:
        merged = self._deep_merge(
            self._load_json(self._system_defaults_dir / "config.json"),
            self._load_user_config(),
            self._load_project_config(),
            self._env_config(),
        )
        if overrides:
            merged = self._deep_merge(merged, overrides)
        if self.workspace_root is not None:
            merged.setdefault("workspace_root", str(self.workspace_root))
        merged = self._resolve_named_sandbox(merged)
        merged = self._expand_env_vars(merged)
        merged = self._remove_none_values(merged)
        return ArtisyncSettings(**merged)

    def _resolve_named_sandbox(self, merged: dict[str, Any]) -> dict[str, Any]:
        """Replace a sandbox name (config value or ARTISYNC_SANDBOX) with its stored config."""
        sandbox = merged.get("sandbox")
        named = sandbox if isinstance(sandbox, str) else None
        if named is None and not self._env.get("ARTISYNC_SANDBOX"):
            return merged
        name = resolve_sandbox_name(named, self._env)
        config = SandboxConfig.load(name, self._home / ".artisync" / "sandboxes")
        return {**merged, "sandbox": config.model_dump()}

    def _load_user_config(self) -> dict[str, Any]:
        """Load user config from ~/.artisync/config.json."""
        return self._load_json(self._home / ".artisync" / "config.json")

    def _load_project_config(self) -> dict[str, Any]:
        """Load project config from .artisync/config.json."""
        if not self.workspace_root:
            return {}
        return self._load_json(self.workspace_root / ".artisync" / "config.json")

    def _env_config(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for var, (group, key) in ENV_OVERRIDES.items():
            value = self._env.get(var)
            if value:
                result.setdefault(group, {})[key] = value
        return result

    @staticmethod
    def _load_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: top level must be an object", path)
            return {}
        return data

    def _deep_merge(self, *dicts: dict[str, Any]) -> dict[str, Any]:
        """Deep merge multiple dictionaries. Later dicts override earlier ones."""
        result: dict[str, Any] = {}
        for d in dicts:
            for key, value in d.items():
                if key not in result:
                    result[key] = value
                elif value is None:
                    continue
                elif isinstance(value, dict) and isinstance(result[key], dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value
        return result

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively expand ${VAR} and ~ in string values."""
        if isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(v) for v in obj]
        if isinstance(obj, str):
            return os.path.expandvars(os.path.expanduser(obj))
        return obj

    def _remove_none_values(self, obj: Any) -> Any:
        """Recursively remove None values to allow Pydantic defaults."""
        if isinstance(obj, dict):
            return {k: self._remove_none_values(v) for k, v in obj.items() if v is not None}
        if isinstance(obj, list):
            return [self._remove_none_values(v) for v in obj if v is not None]
        return obj


def load_config(
    workspace_root: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> ArtisyncSettings:
    """Convenience function to load configuration."""
    return ConfigLoader(workspace_root=workspace_root).load(overrides=overrides)
