# smartaudit/client/cache.py
"""
In-memory TTL cache for read-mostly client calls.

Each entry keeps its own TTL. Reads never return an entry older than that
TTL; a background sweep drops expired entries independently of reads so a
long-lived client does not accumulate dead data.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SWEEP_INTERVAL = 600.0  # seconds
DEFAULT_TTL = 300.0


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.timestamp >= self.ttl


class TTLCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 sweep_interval: float = SWEEP_INTERVAL):
        self._clock = clock
        self._sleep = sleep
        self.sweep_interval = sweep_interval
        self._entries: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None or entry.expired(self._clock()):
            return None
        return entry.data

    def set(self, key: str, data: Any, ttl: float = DEFAULT_TTL) -> None:
        # concurrent fills of the same key: last writer wins
        self._entries[key] = CacheEntry(data, self._clock(), ttl)

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        for k in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[k]

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[Any]],
                           ttl: float = DEFAULT_TTL) -> Any:
        entry = self._entries.get(key)
        if entry is not None and not entry.expired(self._clock()):
            return entry.data
        data = await fetch_fn()
        self.set(key, data, ttl)
        return data

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        stale = [k for k, e in self._entries.items() if e.expired(now)]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("Evicted %d expired cache entries", len(stale))
        return len(stale)

    # ---------------------------
    # Background sweep
    # ---------------------------

    def start(self) -> asyncio.Task:
        """Start the periodic sweep on the running loop (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
        return self._sweeper

    async def _sweep_forever(self):
        while True:
            await self._sleep(self.sweep_interval)
            self.sweep()

    async def close(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
