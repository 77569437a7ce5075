"""Recognise error signals in terminal output.

The terminal manager feeds complete lines to an ``ErrorDetector`` and forwards
whatever it returns to the workspace error queue. ``RegexErrorDetector`` covers
the common Node toolchain output; swap in another detector for other stacks.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Protocol

from sandbox.shell_output import strip_ansi
from workspace.state import ErrorRecord, ErrorSeverity


class ErrorDetector(Protocol):
    def detect(self, text: str) -> list[ErrorRecord]: ...


@dataclass(frozen=True)
class ErrorPattern:
    kind: str
    regex: re.Pattern[str]
    severity: ErrorSeverity = ErrorSeverity.ERROR


# Order matters: the first pattern matching a line wins.
DEFAULT_PATTERNS: tuple[ErrorPattern, ...] = (
    ErrorPattern("npm", re.compile(r"npm (?:ERR!|error) code (?P<code>[A-Z0-9_]+)")),
    ErrorPattern("typescript", re.compile(r"error (?P<code>TS\d{4,5}):\s*(?P<message>.+)")),
    ErrorPattern("node", re.compile(r"\[?(?P<code>ERR_[A-Z0-9_]+)\]?")),
    ErrorPattern(
        "vite",
        re.compile(r"\[vite\].*?(?:Internal server error|Pre-transform error|error):\s*(?P<message>.+)", re.IGNORECASE),
    ),
    ErrorPattern("module", re.compile(r"(?P<message>(?:Module not found|Cannot find module|Failed to resolve import)\b.*)")),
    ErrorPattern(
        "runtime",
        re.compile(r"\b(?P<kind>(?:Type|Reference|Syntax|Range|URI|Eval)?Error):\s*(?P<message>.+)"),
    ),
    ErrorPattern(
        "warning",
        re.compile(r"^\s*(?:warning|WARN|npm WARN)\b[:\s]\s*(?P<message>.+)", re.IGNORECASE),
        ErrorSeverity.WARNING,
    ),
)


def _digest(message: str) -> str:
    return hashlib.sha1(message.encode("utf-8")).hexdigest()[:10]


class RegexErrorDetector:
    def __init__(self, patterns: tuple[ErrorPattern, ...] = DEFAULT_PATTERNS):
        self.patterns = patterns

    def detect(self, text: str) -> list[ErrorRecord]:
        records: dict[str, ErrorRecord] = {}
        for raw_line in strip_ansi(text).splitlines():
            line = raw_line.strip()
            if not line:
                continue
            record = self._match_line(line)
            if record is not None and record.code not in records:
                records[record.code] = record
        return list(records.values())

    def _match_line(self, line: str) -> ErrorRecord | None:
        for pattern in self.patterns:
            match = pattern.regex.search(line)
            if match is None:
                continue
            groups = match.groupdict()
            message = (groups.get("message") or line).strip()
            kind = groups.get("kind") or pattern.kind
            code = groups.get("code") or f"{kind}:{_digest(message)}"
            return ErrorRecord(message=message, code=code, severity=pattern.severity)
        return None
