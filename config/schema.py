"""Core configuration schema for artisync using Pydantic.

This module defines the complete configuration structure with:
- Nested config groups (parser, workspace, sandbox, terminal, persistence, storage)
- Field validators for URLs, debounce windows and paths
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from sandbox.config import SandboxConfig

# ============================================================================
# Component Configuration
# ============================================================================


class ParserConfig(BaseModel):
    """Artifact parser configuration."""

    extra_denylist: list[str] = Field(default_factory=list, description="Paths never written from chat output")


class WorkspaceConfig(BaseModel):
    """Workspace store configuration."""

    error_capacity: int = Field(4, gt=0, description="Errors kept in the queue, newest first")


class SyncConfig(BaseModel):
    """Sandbox mount configuration."""

    mount_debounce_sec: float = Field(0.3, ge=0.0, description="Quiet period before mounting")


class TerminalConfig(BaseModel):
    """Terminal session configuration."""

    scan_errors: bool = Field(True, description="Feed terminal output to the error detector")
    scan_buffer_limit: int = Field(8192, gt=0, description="Max buffered partial line per session")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment for spawned shells")


class PersistenceConfig(BaseModel):
    """Debounced persistence configuration."""

    save_debounce_sec: float = Field(1.5, ge=0.0, description="Quiet period before a save fires")
    probe_timeout_sec: float = Field(0.7, gt=0.0, description="Liveness probe timeout")


class StorageConfig(BaseModel):
    """Project backend configuration."""

    strategy: str = Field("http", description="Storage provider: http / supabase")
    backend_url: str = Field("http://localhost:3000/api", description="Project backend base URL")
    token: str | None = Field(None, description="Bearer token for writes (None = local-only)")
    health_path: str = Field("/health", description="Liveness probe path")
    request_timeout_sec: float = Field(10.0, gt=0.0, description="Timeout for backend requests")
    supabase_client_factory: str | None = Field(None, description="<module>:<callable> for the supabase strategy")
    user_id: str | None = Field(None, description="Scope supabase rows to this user")

    @field_validator("strategy")
    @classmethod
    def validate_strategy(cls, v: str) -> str:
        value = v.strip().lower()
        if value not in {"http", "supabase"}:
            raise ValueError(f"Unknown storage strategy: {v}. Supported: http, supabase")
        return value

    @field_validator("backend_url")
    @classmethod
    def normalize_backend_url(cls, v: str) -> str:
        return v.rstrip("/")


# ============================================================================
# Main Settings
# ============================================================================


class ArtisyncSettings(BaseModel):
    """Main artisync configuration.

    Configuration priority (highest to lowest):
    1. Explicit overrides
    2. Environment variables (ARTISYNC_*)
    3. Project config (.artisync/config.json)
    4. User config (~/.artisync/config.json)
    5. System defaults (config/defaults/config.json)
    """

    parser: ParserConfig = Field(default_factory=ParserConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    workspace_root: str | None = Field(None, description="Directory holding .artisync/config.json")

    @field_validator("workspace_root")
    @classmethod
    def validate_workspace_root(cls, v: str | None) -> str | None:
        if v is None:
            return v
        path = Path(v).expanduser()
        if not path.is_dir():
            raise ValueError(f"workspace_root is not a directory: {v}")
        return str(path.resolve())
