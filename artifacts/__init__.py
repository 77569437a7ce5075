"""Artifact markup: parse streamed assistant text into file mutations and back.

Usage:
    from artifacts import StreamingArtifactParser

    parser = StreamingArtifactParser()
    for chunk in stream:
        store.apply_mutation_batch(parser.feed(chunk), origin)
"""

from artifacts.denylist import EXCLUDED_PATHS, is_excluded
from artifacts.parser import Mutation, ParseResult, StreamingArtifactParser, parse
from artifacts.serializer import (
    files_from_transcript,
    prior_files_from_transcript,
    serialize_artifact,
    summarize_message,
)

__all__ = [
    "EXCLUDED_PATHS",
    "Mutation",
    "ParseResult",
    "StreamingArtifactParser",
    "files_from_transcript",
    "is_excluded",
    "parse",
    "prior_files_from_transcript",
    "serialize_artifact",
    "summarize_message",
]
