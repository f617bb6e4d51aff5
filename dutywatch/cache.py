"""Snapshot of the last fetched duties, reused across restarts."""

import logging
import time
from typing import Optional

from .duties.duty_set import DutySet
from .store import Store, KEY_DUTIES_CACHE

logger = logging.getLogger(__name__)

CACHE_TTL_MS = 5 * 60 * 1000


def now_ms(now: Optional[float] = None) -> int:
    return int((time.time() if now is None else now) * 1000)


class CacheManager:
    """Stores a DutySet with its fetch timestamp (ms).

    A snapshot is usable while it is younger than five minutes; older ones
    are ignored on load but left in place until the next save or clear.
    """

    def __init__(self, store: Store, ttl_ms: int = CACHE_TTL_MS):
        self.store = store
        self.ttl_ms = ttl_ms

    def save(self, duty_set: DutySet, now: Optional[float] = None) -> None:
        self.store.set(KEY_DUTIES_CACHE, {
            "duties": duty_set.to_dict(),
            "timestamp": now_ms(now),
        })

    def load(self, now: Optional[float] = None) -> Optional[DutySet]:
        """Return the cached DutySet, or None when missing, stale or unreadable."""
        snapshot = self.store.get(KEY_DUTIES_CACHE)
        if not snapshot:
            return None
        age = now_ms(now) - int(snapshot.get("timestamp", 0))
        if age >= self.ttl_ms:
            logger.debug(f"Duty cache is stale ({age / 1000:.0f}s old)")
            return None
        try:
            return DutySet.from_dict(snapshot.get("duties", {}))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable duty cache: {e}")
            return None

    def clear(self) -> DutySet:
        self.store.delete(KEY_DUTIES_CACHE)
        logger.info("Duty cache cleared")
        return DutySet()
