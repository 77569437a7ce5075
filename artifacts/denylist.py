"""Paths the parser never turns into workspace mutations.

The assistant habitually re-emits a vendored icon component; those files are
managed by the project template and must not be overwritten from chat output.
"""

from __future__ import annotations

from collections.abc import Iterable

_ICON_COMPONENT_FILES = (
    "base64.js",
    "icon.css",
    "index.js",
    "index.json",
    "index.wxml",
    "icondata.js",
    "index.css",
)

EXCLUDED_PATHS: frozenset[str] = frozenset(
    [f"components/weicon/{name}" for name in _ICON_COMPONENT_FILES]
    + [f"/miniprogram/components/weicon/{name}" for name in _ICON_COMPONENT_FILES]
)


def normalize_path(path: str) -> str:
    """Drop leading ``./`` and ``/`` so equivalent spellings compare equal."""
    normalized = path.strip()
    while True:
        if normalized.startswith("./"):
            normalized = normalized[2:]
        elif normalized.startswith("/"):
            normalized = normalized[1:]
        else:
            return normalized


_NORMALIZED_EXCLUDED = frozenset(normalize_path(p) for p in EXCLUDED_PATHS)


def is_excluded(path: str, extra: Iterable[str] = ()) -> bool:
    normalized = normalize_path(path)
    if normalized in _NORMALIZED_EXCLUDED:
        return True
    return any(normalized == normalize_path(entry) for entry in extra)
