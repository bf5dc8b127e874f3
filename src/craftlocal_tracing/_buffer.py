"""Bounded in-memory buffer of finished span records."""

from __future__ import annotations

from collections import deque

from craftlocal_tracing._types import SpanRecord


class SpanBuffer:
    """FIFO buffer backed by collections.deque.

    ``drain()`` swaps in a fresh deque before returning the old one, so spans
    recorded while a flush is awaiting its exporters land in the new buffer
    and are never iterated twice.
    """

    def __init__(self, maxsize: int) -> None:
        self._maxsize = maxsize
        self._buffer: deque[SpanRecord] = deque(maxlen=maxsize)
        self._drop_count: int = 0

    def append(self, record: SpanRecord) -> None:
        """Add a record. The oldest record is dropped if full."""
        if len(self._buffer) == self._maxsize:
            self._drop_count += 1
        self._buffer.append(record)

    def drain(self) -> list[SpanRecord]:
        """Remove and return every buffered record."""
        items, self._buffer = self._buffer, deque(maxlen=self._maxsize)
        return list(items)

    @property
    def drop_count(self) -> int:
        """Number of records dropped due to buffer overflow."""
        return self._drop_count

    def __len__(self) -> int:
        return len(self._buffer)
