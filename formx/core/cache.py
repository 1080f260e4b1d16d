import time
from typing import Any, Callable, Dict, Optional, Tuple

from formx.core.config import settings

CACHE_PREFIX = "formx-data-"


class DataCache:
    """
    In-memory TTL cache for remote data loads, keyed by source descriptor.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl = settings.DATA_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._store: Dict[str, Tuple[float, Any]] = {}

    @staticmethod
    def key(name: str) -> str:
        return f"{CACHE_PREFIX}{name}"

    def get(self, name: str) -> Optional[Any]:
        entry = self._store.get(self.key(name))
        if entry is None:
            return None
        ts, value = entry
        if self._clock() - ts > self.ttl:
            del self._store[self.key(name)]
            return None
        return value

    def set(self, name: str, value: Any) -> None:
        now = self._clock()
        self.prune(now)
        self._store[self.key(name)] = (now, value)

    def prune(self, now: Optional[float] = None) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [k for k, (ts, _) in self._store.items() if now - ts > self.ttl]
        for k in expired:
            del self._store[k]
        return len(expired)

    def invalidate(self, name: str) -> None:
        self._store.pop(self.key(name), None)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self):
        return len(self._store)
