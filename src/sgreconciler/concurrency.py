"""Per-instance serialization of lifecycle operations.

Create and ensure against the same derived name can race, and the Cloud
Controller offers no create-if-absent primitive. Holding one lock per instance
guid keeps operations for an instance sequential within this process.
Operations for different instances never contend.

For exclusion across processes the calling workflow must still serialize
operations per instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class InstanceLocks:
    """Keyed asyncio locks, one per service instance guid."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, instance_guid: str) -> bool:
        lock = self._locks.get(instance_guid)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, instance_guid: str) -> AsyncIterator[None]:
        """Hold the lock for an instance for the duration of the block."""
        lock = self._locks.setdefault(instance_guid, asyncio.Lock())
        self._waiters[instance_guid] = self._waiters.get(instance_guid, 0) + 1

        if lock.locked():
            logger.info(
                "Waiting for in-flight operation on instance",
                extra={"instance_guid": instance_guid},
            )

        try:
            async with lock:
                yield
        finally:
            # Drop the entry once nobody holds or waits for it
            remaining = self._waiters[instance_guid] - 1
            if remaining:
                self._waiters[instance_guid] = remaining
            else:
                del self._waiters[instance_guid]
                del self._locks[instance_guid]
