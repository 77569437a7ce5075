"""Incremental parser for file directives embedded in streamed assistant text.

Two markup dialects are accepted::

    <boltArtifact id="app" title="Counter">
    <boltAction type="file" filePath="src/main.ts">
    ...
    </boltAction>
    </boltArtifact>

    <artifact id="app"><file path="src/main.ts">...</file></artifact>

Only artifact blocks whose end marker has arrived produce mutations. Anything
that might still become a block (an open artifact, or a dangling ``<boltArt``
prefix) is handed back as ``trailing_text`` so the caller can prepend it to the
next chunk. Parsing is pure: the same input always yields the same result.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from artifacts.denylist import is_excluded

logger = logging.getLogger(__name__)

_ARTIFACT_OPEN_RE = re.compile(r"<(boltArtifact|artifact)\b([^>]*)>")
_ACTION_RE = re.compile(r"<(boltAction|file)\b([^>]*)>(.*?)</\1>", re.DOTALL)
_ATTR_RE = re.compile(r"""([A-Za-z_][\w:.-]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")

_OPENERS = ("<boltArtifact", "<artifact")


@dataclass(frozen=True)
class Mutation:
    path: str
    content: str


@dataclass
class ParseResult:
    mutations: list[Mutation] = field(default_factory=list)
    trailing_text: str = ""


def parse(text: str, *, extra_denylist: Iterable[str] = ()) -> ParseResult:
    """Extract file mutations from every closed artifact block in ``text``."""
    extra = tuple(extra_denylist)
    mutations: list[Mutation] = []
    pos = 0
    while True:
        match = _ARTIFACT_OPEN_RE.search(text, pos)
        if match is None:
            break
        closer = f"</{match.group(1)}>"
        end = text.find(closer, match.end())
        if end == -1:
            return ParseResult(mutations, text[match.start():])
        attrs = parse_attributes(match.group(2))
        if "id" in attrs or "title" in attrs:
            mutations.extend(_file_actions(text[match.end():end], extra))
        else:
            logger.debug("Skipping artifact block without id/title at offset %d", match.start())
        pos = end + len(closer)
    return ParseResult(mutations, _pending_opener(text[pos:]))


def parse_attributes(raw: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for name, double_quoted, single_quoted in _ATTR_RE.findall(raw):
        attrs[name] = double_quoted or single_quoted
    return attrs


def _file_actions(body: str, extra: tuple[str, ...]) -> list[Mutation]:
    found: list[Mutation] = []
    for match in _ACTION_RE.finditer(body):
        attrs = parse_attributes(match.group(2))
        if attrs.get("type", "file") != "file":
            continue
        path = attrs.get("filePath") or attrs.get("path")
        if not path:
            logger.debug("Skipping file directive without a path attribute")
            continue
        if is_excluded(path, extra):
            continue
        found.append(Mutation(path, _strip_framing_newlines(match.group(3))))
    return found


def _strip_framing_newlines(content: str) -> str:
    if content.startswith("\n"):
        content = content[1:]
    if content.endswith("\n"):
        content = content[:-1]
    return content


def _pending_opener(tail: str) -> str:
    """Return the suffix of ``tail`` that may still grow into a start marker."""
    idx = tail.find("<", tail.rfind(">") + 1)
    while idx != -1:
        fragment = tail[idx:]
        for opener in _OPENERS:
            if opener.startswith(fragment) or fragment.startswith(opener):
                return fragment
        idx = tail.find("<", idx + 1)
    return ""


class StreamingArtifactParser:
    """Carries ``trailing_text`` between chunks of one assistant turn."""

    def __init__(self, *, extra_denylist: Iterable[str] = ()):
        self.trailing_text = ""
        self._extra_denylist = tuple(extra_denylist)

    def feed(self, chunk: str) -> list[Mutation]:
        result = parse(self.trailing_text + chunk, extra_denylist=self._extra_denylist)
        self.trailing_text = result.trailing_text
        return result.mutations

    def finish(self) -> str:
        """End the turn. Returns whatever never closed (usually empty)."""
        leftover, self.trailing_text = self.trailing_text, ""
        if leftover:
            logger.debug("Assistant turn ended with %d unparsed characters", len(leftover))
        return leftover
