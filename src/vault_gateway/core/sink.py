"""
Bounded upsert sink between the sync engine and the tracking store.

The engine awaits :meth:`UpsertSink.put`, which blocks while the queue is
full so a slow consumer throttles the producer.  Once closed, the sink
refuses new records but still hands out the ones already queued.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from vault_gateway.core.models import TrackingRecord
from vault_gateway.errors import SinkClosed

_CLOSED = object()


class UpsertSink:
    """asyncio queue of :class:`TrackingRecord` upserts."""

    def __init__(self, maxsize: int = 100) -> None:
        if maxsize < 1:
            raise ValueError("sink capacity must be at least 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def qsize(self) -> int:
        return self._queue.qsize()

    async def put(self, record: TrackingRecord) -> None:
        """Enqueue *record*, waiting for space if the sink is full."""
        if self._closed:
            raise SinkClosed(f"sink is closed; dropped {record.tracking_id}")
        await self._queue.put(record)

    def close(self) -> None:
        """Stop accepting records and wake the consumer once drained."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # the consumer stops on its own once the backlog is empty
            pass

    def drain_nowait(self) -> list[TrackingRecord]:
        """Remove and return every record currently queued."""
        records: list[TrackingRecord] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                records.append(item)
        return records

    async def __aiter__(self) -> AsyncIterator[TrackingRecord]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
