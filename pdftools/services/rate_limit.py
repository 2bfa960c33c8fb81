"""Per-client cooldown with an injected clock."""

import threading
from datetime import timedelta
from typing import Dict

from pdftools.jobs.models import Clock, utcnow


class CooldownLimiter:
    """Allows one hit per key every ``cooldown_seconds``."""

    def __init__(self, cooldown_seconds: float = 30, clock: Clock = utcnow, max_keys: int = 10000):
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock
        self._max_keys = max_keys
        self._last_hit: Dict[str, object] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        """Record an attempt; False if the key is still cooling down."""
        now = self._clock()
        with self._lock:
            last = self._last_hit.get(key)
            if last is not None and now - last < self._cooldown:
                return False
            if len(self._last_hit) >= self._max_keys:
                self._prune(now)
            self._last_hit[key] = now
            return True

    def _prune(self, now) -> None:
        stale = [k for k, t in self._last_hit.items() if now - t >= self._cooldown]
        for key in stale:
            del self._last_hit[key]
