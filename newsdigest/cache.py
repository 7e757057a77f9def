# newsdigest/cache.py
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from . import config as app_config

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Process-local key/value store where every entry expires a fixed number of
    seconds after it was inserted. Expired entries read as absent and are
    dropped on access or by `sweep()`. There is no size bound.
    """

    def __init__(self, default_ttl: int = app_config.CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                expires_at, value = entry
                if self._clock() < expires_at:
                    self._hits += 1
                    logger.debug(f"CACHE: Hit for {key}")
                    return value
                del self._entries[key]
                logger.debug(f"CACHE: Key expired {key}")
            self._misses += 1
            logger.debug(f"CACHE: Miss for {key}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return False
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)
        logger.debug(f"CACHE: Set {key} (ttl={ttl}s)")
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("CACHE: Flushed all entries")

    def sweep(self) -> int:
        """Drops every expired entry and returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"CACHE: Swept {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, int]:
        self.sweep()
        with self._lock:
            return {"keys": len(self._entries), "hits": self._hits, "misses": self._misses}
