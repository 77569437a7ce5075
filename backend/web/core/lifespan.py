"""Application lifespan management."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.web.core.config import PROJECT_CONFIG_ROOT
from backend.web.services.binding_service import ProjectBindingService
from backend.web.services.coordinator import WorkspaceCoordinator
from backend.web.services.persistence_service import PersistenceGateway
from config.loader import ConfigLoader
from config.schema import ArtisyncSettings
from sandbox import SandboxInstance, create_sandbox
from sandbox.error_detector import RegexErrorDetector
from sandbox.sync import WorkspaceSyncBridge
from sandbox.terminal import TerminalSessionManager
from storage.interfaces import ProjectRepo
from storage.runtime import build_project_repo
from workspace.store import ChatWorkspaceStore

logger = logging.getLogger(__name__)


def build_repo(settings: ArtisyncSettings) -> ProjectRepo:
    storage = settings.storage
    return build_project_repo(
        strategy=storage.strategy,
        base_url=storage.backend_url,
        token=storage.token,
        health_path=storage.health_path,
        timeout=storage.request_timeout_sec,
        supabase_client_factory=storage.supabase_client_factory,
        user_id=storage.user_id,
    )


def build_coordinator(settings: ArtisyncSettings, repo: ProjectRepo) -> WorkspaceCoordinator:
    """Wire every engine component from settings."""
    extra_denylist = tuple(settings.parser.extra_denylist)
    store = ChatWorkspaceStore(error_capacity=settings.workspace.error_capacity)
    instance = SandboxInstance(lambda: create_sandbox(settings.sandbox))
    bridge = WorkspaceSyncBridge(store, instance, debounce_sec=settings.sync.mount_debounce_sec)
    terminals = TerminalSessionManager(
        instance,
        shell=settings.sandbox.shell,
        env=settings.terminal.env,
        detector=RegexErrorDetector() if settings.terminal.scan_errors else None,
        scan_buffer_limit=settings.terminal.scan_buffer_limit,
    )
    binding = ProjectBindingService(repo, store, extra_denylist=extra_denylist)
    gateway = PersistenceGateway(
        repo,
        binding,
        debounce_sec=settings.persistence.save_debounce_sec,
        probe_timeout_sec=settings.persistence.probe_timeout_sec,
    )
    return WorkspaceCoordinator(store, bridge, terminals, binding, gateway, extra_denylist=extra_denylist)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown."""
    settings = getattr(app.state, "settings", None) or ConfigLoader(PROJECT_CONFIG_ROOT).load()
    repo = getattr(app.state, "project_repo", None) or build_repo(settings)

    app.state.settings = settings
    app.state.project_repo = repo
    app.state.coordinator = build_coordinator(settings, repo)
    logger.info(
        "artisync engine started (sandbox=%s, storage=%s)",
        settings.sandbox.provider,
        settings.storage.strategy,
    )

    try:
        yield
    finally:
        coordinator: WorkspaceCoordinator = app.state.coordinator
        # Cleanup: push pending saves before the process goes away
        try:
            await coordinator.gateway.flush()
        except Exception:
            logger.exception("Flushing pending saves failed during shutdown")
        await coordinator.terminals.close_all()
        coordinator.close()
        await coordinator.bridge.shutdown()
        await repo.close()
