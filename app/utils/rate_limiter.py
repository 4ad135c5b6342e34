from __future__ import annotations

import re
import threading
import time

from cachetools import TTLCache

from utils import ApiError


class InMemoryRateLimiter:
    """Fixed windows per key; old window counters age out of the TTL cache."""

    def __init__(self, *, window_seconds: int = 60, max_keys: int = 50_000):
        self._window_seconds = window_seconds
        self._lock = threading.Lock()
        self._counts: TTLCache = TTLCache(maxsize=max_keys, ttl=window_seconds * 2)

    @staticmethod
    def _parse_limit_per_minute(limit: str) -> int:
        m = re.match(r"^\s*(\d+)\s+per\s+minute\s*$", str(limit or ""), re.IGNORECASE)
        if not m:
            return 300
        return max(1, int(m.group(1)))

    def check(self, key: str, limit: str) -> None:
        max_per_minute = self._parse_limit_per_minute(limit)
        window_key = f"{key}:{int(time.time() // self._window_seconds)}"

        with self._lock:
            count = int(self._counts.get(window_key, 0)) + 1
            self._counts[window_key] = count

        if count > max_per_minute:
            raise ApiError("RATE_LIMITED", "Rate limit exceeded", details={"limit": limit})

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
