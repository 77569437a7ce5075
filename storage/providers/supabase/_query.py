"""PostgREST response / query helpers for the Supabase project repo."""

from __future__ import annotations

from typing import Any

from storage.interfaces import BackendError


def rows(response: Any, operation: str) -> list[dict[str, Any]]:
    """Extract the `.data` row list from a supabase-py response.

    A payload of the wrong shape means the client is not supabase-py (or a
    compatible adapter) and is reported as a BackendError.
    """
    payload = response.get("data") if isinstance(response, dict) else getattr(response, "data", None)
    if not isinstance(payload, list):
        raise BackendError(
            f"Supabase {operation} expected a list in `.data`, got {type(payload).__name__}. "
            "Check Supabase client compatibility."
        )
    if any(not isinstance(row, dict) for row in payload):
        raise BackendError(f"Supabase {operation} returned non-object rows")
    return payload


def _builder(query: Any, method: str, operation: str) -> Any:
    fn = getattr(query, method, None)
    if fn is None:
        raise RuntimeError(f"Supabase {operation} needs query.{method}(). Use supabase-py.")
    return fn


def order(query: Any, column: str, *, desc: bool, operation: str) -> Any:
    return _builder(query, "order", operation)(column, desc=desc)


def limit(query: Any, value: int, operation: str) -> Any:
    return _builder(query, "limit", operation)(value)
