"""Pick and build the project repository for the configured storage strategy.

    http      HttpProjectRepo against the project backend REST API (default)
    supabase  SupabaseProjectRepo over a supabase-py client produced by a
              ``<module>:<callable>`` factory
"""

from __future__ import annotations

import importlib
import os
from collections.abc import Callable, Mapping
from typing import Any, Literal

from storage.interfaces import ProjectRepo

StorageStrategy = Literal["http", "supabase"]
_STRATEGIES: tuple[StorageStrategy, ...] = ("http", "supabase")


def build_project_repo(
    *,
    strategy: str | None = None,
    base_url: str | None = None,
    token: str | None = None,
    health_path: str | None = None,
    timeout: float = 10,
    supabase_client: Any | None = None,
    supabase_client_factory: str | None = None,
    user_id: str | None = None,
    env: Mapping[str, str] | None = None,
) -> ProjectRepo:
    """Explicit arguments win over ARTISYNC_* environment variables."""
    env_map = env if env is not None else os.environ
    chosen = _resolve_strategy(strategy if strategy is not None else env_map.get("ARTISYNC_STORAGE_STRATEGY"))

    if chosen == "supabase":
        from storage.providers.supabase import SupabaseProjectRepo

        factory_ref = supabase_client_factory or env_map.get("ARTISYNC_SUPABASE_CLIENT_FACTORY")
        client = supabase_client if supabase_client is not None else _client_from_factory(factory_ref)
        return SupabaseProjectRepo(client, user_id=user_id or env_map.get("ARTISYNC_USER_ID"))

    from storage.providers.http import HttpProjectRepo

    options: dict[str, Any] = {
        "token": token if token is not None else env_map.get("ARTISYNC_BACKEND_TOKEN"),
        "timeout": timeout,
    }
    if health_path is not None:
        options["health_path"] = health_path
    url = base_url or env_map.get("ARTISYNC_BACKEND_URL")
    return HttpProjectRepo(url, **options) if url else HttpProjectRepo(**options)


def _resolve_strategy(raw: str | None) -> StorageStrategy:
    value = (raw or "").strip().lower() or "http"
    for strategy in _STRATEGIES:
        if value == strategy:
            return strategy
    raise RuntimeError(
        f"Invalid ARTISYNC_STORAGE_STRATEGY value: {raw!r}. Supported values: {', '.join(_STRATEGIES)}."
    )


def _client_from_factory(factory_ref: str | None) -> Any:
    if not factory_ref:
        raise RuntimeError(
            "Supabase storage strategy needs a client. Set "
            "ARTISYNC_SUPABASE_CLIENT_FACTORY=<module>:<callable> or pass supabase_client."
        )
    client = _load_factory(factory_ref)()
    # @@@client-shape-check - reject anything without table(name) here, not on the first query
    if not callable(getattr(client, "table", None)):
        raise RuntimeError(
            f"Supabase client from {factory_ref!r} must expose a callable table(name) API, "
            f"got {type(client).__name__}."
        )
    return client


def _load_factory(factory_ref: str) -> Callable[[], Any]:
    module_name, sep, attr_name = factory_ref.partition(":")
    if not (sep and module_name and attr_name):
        raise RuntimeError(
            f"Invalid ARTISYNC_SUPABASE_CLIENT_FACTORY {factory_ref!r}. Expected '<module>:<callable>'."
        )
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:
        raise RuntimeError(f"Cannot import supabase client factory module {module_name!r}: {exc}") from exc
    factory = getattr(module, attr_name, None)
    if not callable(factory):
        raise RuntimeError(f"Supabase client factory {factory_ref!r} is missing or not callable.")
    return factory
