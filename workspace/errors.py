"""Bounded, de-duplicating queue of errors surfaced from terminal output."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from workspace.state import ErrorRecord

logger = logging.getLogger(__name__)

DEFAULT_ERROR_CAPACITY = 4


class ErrorQueue:
    """Newest-first list of at most ``capacity`` records, unique by code."""

    def __init__(self, capacity: int = DEFAULT_ERROR_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Error queue capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._records: list[ErrorRecord] = []
        self._bulk_loading = False

    @property
    def bulk_loading(self) -> bool:
        return self._bulk_loading

    @contextmanager
    def bulk_load(self) -> Iterator[None]:
        """Suppress pushes while stored history is being replayed."""
        previous = self._bulk_loading
        self._bulk_loading = True
        try:
            yield
        finally:
            self._bulk_loading = previous

    def push(self, record: ErrorRecord) -> bool:
        """Queue ``record``. Returns False when nothing observable changed."""
        if self._bulk_loading:
            return False
        for existing in self._records:
            if existing.code == record.code:
                existing.occurrence_count += 1
                return True
        self._records.insert(0, record)
        if len(self._records) > self.capacity:
            dropped = self._records[self.capacity:]
            del self._records[self.capacity:]
            logger.debug("Error queue full, evicted %s", [r.code for r in dropped])
        return True

    def remove(self, index: int) -> ErrorRecord:
        if not 0 <= index < len(self._records):
            raise IndexError(f"No error at index {index}")
        return self._records.pop(index)

    def clear(self) -> None:
        self._records.clear()

    def snapshot(self) -> list[ErrorRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)
