"""Supabase client factory for the ``supabase`` storage strategy.

Point ``ARTISYNC_SUPABASE_CLIENT_FACTORY`` at
``backend.web.core.supabase_factory:create_supabase_client``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from supabase import Client, ClientOptions, create_client

DEFAULT_SCHEMA = "public"


def supabase_settings(env: Mapping[str, str] | None = None) -> tuple[str, str, str]:
    """Return (url, service key, schema) or raise naming the missing variable."""
    env_map = env if env is not None else os.environ
    url = env_map.get("SUPABASE_URL")
    key = env_map.get("ARTISYNC_SUPABASE_SERVICE_ROLE_KEY")
    missing = [name for name, value in (("SUPABASE_URL", url), ("ARTISYNC_SUPABASE_SERVICE_ROLE_KEY", key)) if not value]
    if missing:
        # @@@runtime-factory-fail-loud - a half-configured supabase strategy must not quietly bind projects locally
        raise RuntimeError(f"{', '.join(missing)} required for the supabase storage strategy.")
    return url, key, env_map.get("ARTISYNC_SUPABASE_SCHEMA") or DEFAULT_SCHEMA


def create_supabase_client() -> Client:
    url, key, schema = supabase_settings()
    return create_client(url, key, options=ClientOptions(schema=schema))
