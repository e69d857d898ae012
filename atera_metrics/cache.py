"""In-process TTL cache shared by the collection fetchers and report builders."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Key/value store with per-entry expiry.

    Expired entries are only replaced, never swept, so the store holds one
    entry per distinct key for the lifetime of the instance. Keys are derived
    from query shapes and stay few in practice.
    """

    def __init__(self, *, default_ttl: float = 30.0, clock: Optional[Clock] = None) -> None:
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Optional[str]) -> Optional[Any]:
        """Return the cached value when it has not expired, else ``None``."""
        if not key:
            return None
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self._clock():
            LOGGER.debug("Cache hit for %s", key)
            return entry.value
        LOGGER.debug("Cache miss for %s", key)
        return None

    def set(self, key: Optional[str], value: Any, ttl: Optional[float] = None) -> None:
        if not key:
            return
        lifetime = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(value=value, expires_at=self._clock() + lifetime)
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
