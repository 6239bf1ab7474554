import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


class RoutingCache:
    """
    Insertion-ordered cache for routing engine responses.

    There is no TTL. Once the cache holds more than max_size entries the
    oldest ones are dropped, either by the background pruner (run_pruner)
    or lazily on write once cleanup_interval has elapsed on the injected
    clock. Both paths only ever remove the oldest keys.
    """

    def __init__(
        self,
        max_size: int = 100,
        cleanup_interval: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._sleep = sleep
        self._entries: OrderedDict[Hashable, Any] = OrderedDict()
        self._last_prune = clock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            self.misses += 1
            return default
        self.hits += 1
        return value

    def set(self, key: Hashable, value: Any) -> None:
        # Overwrites keep their original insertion slot
        self._entries[key] = value
        if self._clock() - self._last_prune >= self.cleanup_interval:
            self.prune()

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def prune(self) -> int:
        """Drop the oldest entries beyond max_size. Returns how many were removed."""
        self._last_prune = self._clock()
        excess = len(self._entries) - self.max_size
        if excess <= 0:
            return 0
        for _ in range(excess):
            self._entries.popitem(last=False)
        logger.info("Routing cache pruned: %d entries removed", excess)
        return excess

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        logger.info("Routing cache cleared")

    def stats(self) -> dict:
        usage = round(len(self._entries) / self.max_size * 100) if self.max_size else 0
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "usage_percent": usage,
            "hits": self.hits,
            "misses": self.misses,
        }

    async def run_pruner(self) -> None:
        """Prune on a fixed interval until cancelled."""
        while True:
            await self._sleep(self.cleanup_interval)
            self.prune()


def make_key(kind: str, profile: str, *coords: tuple[float, float]) -> tuple:
    return (kind, profile, *coords)
