"""Shared terminal output normalization helpers."""

from __future__ import annotations

import re

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]")


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def normalize_terminal_text(text: str) -> str:
    """Strip escape sequences and fold CRLF / lone CR into LF."""
    text = strip_ansi(text)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_complete_lines(pending: str, chunk: str, *, limit: int = 8192) -> tuple[list[str], str]:
    """Join ``chunk`` onto a partial line and split off every finished line.

    Returns (complete_lines, new_pending). A pending fragment longer than
    ``limit`` keeps only its tail so a process that never prints a newline
    cannot grow the buffer without bound.
    """
    lines = (pending + normalize_terminal_text(chunk)).split("\n")
    rest = lines.pop()
    if len(rest) > limit:
        rest = rest[-limit:]
    return lines, rest
