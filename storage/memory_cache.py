"""In-process cache backend."""
import threading
import time
from datetime import timedelta
from typing import Callable, Dict, List, NamedTuple, Optional

from processor.models import SkipLocation
from storage.cache import Cache


class _Entry(NamedTuple):
    locations: List[SkipLocation]
    expires_at: float


class MemoryCache(Cache):
    """Dictionary-backed cache with lazy expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize an empty cache.

        Args:
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[SkipLocation]]:
        with self._lock:
            entry = self._entries.get(key)

        if entry is None or self._clock() >= entry.expires_at:
            return None
        return list(entry.locations)

    def set(self, key: str, locations: List[SkipLocation], ttl: timedelta) -> None:
        entry = _Entry(list(locations), self._clock() + ttl.total_seconds())
        with self._lock:
            self._entries[key] = entry
