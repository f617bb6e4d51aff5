"""Record of duties that have already been notified."""

import logging

from ..store import Store, KEY_NOTIFIED_DUTIES

logger = logging.getLogger(__name__)


class NotificationLedger:
    """Persistent set of ``"{type}-{slot}-{validator}"`` keys.

    An entry is written before the notification is sent and is only removed
    by ``clear``; a key present here is never notified again.
    """

    def __init__(self, store: Store):
        self.store = store
        self._keys: set[str] = set()

    @staticmethod
    def key(kind: str, slot: int, validator_id: str) -> str:
        kind = getattr(kind, "value", kind)
        return f"{kind}-{slot}-{validator_id}"

    def load(self) -> None:
        stored = self.store.get(KEY_NOTIFIED_DUTIES, [])
        if not isinstance(stored, list):
            logger.warning("Ignoring malformed notified duty ledger")
            stored = []
        self._keys = set(stored)
        logger.debug(f"Loaded {len(self._keys)} notified duty key(s)")

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def contains(self, kind: str, slot: int, validator_id: str) -> bool:
        return self.key(kind, slot, validator_id) in self._keys

    def mark(self, kind: str, slot: int, validator_id: str) -> bool:
        """Add and persist a key. Returns False if it was already present."""
        key = self.key(kind, slot, validator_id)
        if key in self._keys:
            return False
        self._keys.add(key)
        self.store.set(KEY_NOTIFIED_DUTIES, sorted(self._keys))
        return True

    def clear(self) -> None:
        self._keys.clear()
        self.store.delete(KEY_NOTIFIED_DUTIES)
        logger.info("Notification ledger cleared")
