"""
Cooldown stores for alert deduplication.

A cooldown entry maps an alert key (metric, level) to the time it last
fired. try_acquire() is the only write path and is atomic: of several
concurrent callers for the same key inside one window, exactly one gets
True.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from django.core.cache import caches
from django.utils.dateparse import parse_datetime

from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)

CooldownKey = Tuple[str, str]


class CooldownStore:
    """Interface shared by the cooldown backends."""

    def try_acquire(self, key: CooldownKey, now: datetime, window: timedelta) -> bool:
        """Record a firing for key unless one was recorded less than window ago."""
        raise NotImplementedError

    def last_fired(self, key: CooldownKey) -> Optional[datetime]:
        raise NotImplementedError

    def reset(self, key: Optional[CooldownKey] = None) -> None:
        raise NotImplementedError


class InMemoryCooldownStore(CooldownStore):
    """
    Process-local cooldown map guarded by a lock.

    Only correct when a single process dispatches alerts. Entries older
    than the window they were acquired with are evicted lazily.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[CooldownKey, Tuple[datetime, timedelta]] = {}

    def try_acquire(self, key: CooldownKey, now: datetime, window: timedelta) -> bool:
        with self._lock:
            self._evict_expired(now)
            entry = self._entries.get(key)
            if entry is not None and now - entry[0] < window:
                return False
            self._entries[key] = (now, window)
            return True

    def last_fired(self, key: CooldownKey) -> Optional[datetime]:
        with self._lock:
            entry = self._entries.get(key)
            return entry[0] if entry else None

    def reset(self, key: Optional[CooldownKey] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def _evict_expired(self, now: datetime) -> None:
        expired = [key for key, (fired_at, window) in self._entries.items() if now - fired_at >= window]
        for key in expired:
            del self._entries[key]


class CacheCooldownStore(CooldownStore):
    """
    Cooldown map in the Django cache, shared by every process.

    cache.add() only writes when the key is absent (SET NX on Redis), and
    the entry expires with the window, so acquisition is atomic across
    workers.

    The window is enforced by the cache TTL, which runs on the cache
    server's wall clock. The `now` passed to try_acquire() is only stored
    as the firing time, so an injected dispatcher clock does not move
    this backend's windows; use InMemoryCooldownStore where tests need
    to advance time.
    """

    KEY_PREFIX = 'alert_cooldown'

    def __init__(self, cache_alias: str = 'default'):
        self.cache_alias = cache_alias

    @property
    def cache(self):
        return caches[self.cache_alias]

    def try_acquire(self, key: CooldownKey, now: datetime, window: timedelta) -> bool:
        timeout = max(int(window.total_seconds()), 1)
        return bool(self.cache.add(self._cache_key(key), now.isoformat(), timeout=timeout))

    def last_fired(self, key: CooldownKey) -> Optional[datetime]:
        value = self.cache.get(self._cache_key(key))
        return parse_datetime(value) if value else None

    def reset(self, key: Optional[CooldownKey] = None) -> None:
        if key is None:
            logger.warning("CacheCooldownStore cannot enumerate keys; reset one key at a time")
            return
        self.cache.delete(self._cache_key(key))

    def _cache_key(self, key: CooldownKey) -> str:
        metric, level = key
        return f"{self.KEY_PREFIX}:{metric}:{level}"


COOLDOWN_BACKENDS = {
    'memory': InMemoryCooldownStore,
    'cache': CacheCooldownStore,
}


def build_cooldown_store(backend: str) -> CooldownStore:
    try:
        return COOLDOWN_BACKENDS[backend]()
    except KeyError:
        raise ConfigurationError(
            'ALERT_COOLDOWN_BACKEND',
            f"unknown backend '{backend}', expected one of {sorted(COOLDOWN_BACKENDS)}"
        )
