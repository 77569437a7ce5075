"""Reverse direction of the parser plus transcript helpers."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from artifacts.denylist import is_excluded
from artifacts.parser import parse

DEFAULT_ARTIFACT_ID = "workspace"
DEFAULT_ARTIFACT_TITLE = "the current file"

_CLOSED_ARTIFACT_RE = re.compile(r"<(boltArtifact|artifact)\b[^>]*>.*?</\1>", re.DOTALL)


def serialize_artifact(
    files: Mapping[str, str],
    *,
    title: str = DEFAULT_ARTIFACT_TITLE,
    artifact_id: str = DEFAULT_ARTIFACT_ID,
    extra_denylist: Iterable[str] = (),
) -> str:
    """Render ``files`` as one bolt-dialect artifact block.

    Bodies are framed by a single newline on each side, which ``parse`` strips,
    so parsing the result reproduces ``files`` exactly. Returns ``""`` when no
    file survives the denylist.
    """
    extra = tuple(extra_denylist)
    actions = [
        f'<boltAction type="file" filePath="{path}">\n{content}\n</boltAction>'
        for path, content in files.items()
        if not is_excluded(path, extra)
    ]
    if not actions:
        return ""
    body = "\n\n".join(actions)
    return f'<boltArtifact id="{artifact_id}" title="{title}">\n{body}\n</boltArtifact>\n\n'


def summarize_message(text: str) -> str:
    """Collapse the first artifact block into a one-line summary of its paths."""
    match = _CLOSED_ARTIFACT_RE.search(text)
    if match is None:
        return text
    paths = [m.path for m in parse(match.group(0)).mutations]
    summary = f"Modified directory {json.dumps(paths)}"
    return (text[: match.start()] + summary + text[match.end():]).strip()


def message_text(message: Mapping[str, Any]) -> str:
    """Plain text of a persisted chat message (string or content-part list)."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, Mapping) and part.get("type", "text") == "text"
        )
    return ""


def files_from_transcript(
    messages: Iterable[Mapping[str, Any]],
    *,
    extra_denylist: Iterable[str] = (),
) -> dict[str, str]:
    """Rebuild a file map by replaying every message; later messages win."""
    extra = tuple(extra_denylist)
    files: dict[str, str] = {}
    for message in messages:
        for mutation in parse(message_text(message), extra_denylist=extra).mutations:
            files[mutation.path] = mutation.content
    return files


def prior_files_from_transcript(
    messages: Iterable[Mapping[str, Any]],
    *,
    extra_denylist: Iterable[str] = (),
) -> dict[str, str]:
    """Files from the second assistant message: the baseline of the first edit."""
    assistant = [m for m in messages if m.get("role") == "assistant"]
    if len(assistant) < 2:
        return {}
    return files_from_transcript([assistant[1]], extra_denylist=extra_denylist)
