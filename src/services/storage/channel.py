"""
Snapshot Channel

Carries "latest known collection" events from the remote client's listener
threads to the store's event loop.

DESIGN DECISION: The channel coalesces. Each delivery is the entire
collection, so an older pending snapshot of a collection is worthless once
a newer one arrives; only the newest per collection is kept. The consumer
always receives whole collections and replaces its slices with them.

Once closed, nothing published afterwards is ever delivered.
"""

import asyncio
import threading
from typing import AsyncIterator, Optional

from src.models.records import Collection
from src.models.store import CollectionSnapshot


class SnapshotChannel:
    """Thread-safe, coalescing snapshot queue bound to one event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._pending: dict[Collection, CollectionSnapshot] = {}
        self._ready = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, snapshot: CollectionSnapshot) -> bool:
        """
        Offer a snapshot from any thread.

        Returns:
            False if the channel is closed and the snapshot was dropped
        """
        with self._lock:
            if self._closed:
                return False
            # Re-insert so arrival order reflects the latest delivery
            self._pending.pop(snapshot.collection, None)
            self._pending[snapshot.collection] = snapshot
        try:
            self._loop.call_soon_threadsafe(self._ready.set)
        except RuntimeError:
            # Event loop already closed
            return False
        return True

    async def receive(self) -> list[CollectionSnapshot]:
        """
        Wait for pending snapshots.

        Returns:
            Latest snapshot per collection, oldest delivery first; an empty
            list once the channel is closed
        """
        while True:
            with self._lock:
                if self._closed:
                    return []
                if self._pending:
                    batch = list(self._pending.values())
                    self._pending.clear()
                    self._ready.clear()
                    return batch
            await self._ready.wait()
            self._ready.clear()

    def close(self) -> None:
        """Drop everything pending and wake the consumer."""
        with self._lock:
            self._closed = True
            self._pending.clear()
        try:
            self._loop.call_soon_threadsafe(self._ready.set)
        except RuntimeError:
            pass

    async def __aiter__(self) -> AsyncIterator[list[CollectionSnapshot]]:
        while True:
            batch = await self.receive()
            if not batch:
                return
            yield batch
