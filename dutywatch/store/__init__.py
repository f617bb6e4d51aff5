"""Persistent tracker state with SQLite storage."""

from .store import (
    Store,
    KEY_VALIDATORS,
    KEY_VALIDATOR_LABELS,
    KEY_PENDING_VALIDATORS,
    KEY_NOTIFIED_DUTIES,
    KEY_DUTIES_CACHE,
    KEY_MISSED_ATTESTATIONS,
    KEY_NOTIFICATION_SETTINGS,
    KEY_BEACON_URL,
    KEY_BLOCK_DETAILS,
    KEY_SCHEMA_VERSION,
)
from .migrations import migrate, SCHEMA_VERSION

__all__ = [
    "Store",
    "migrate",
    "SCHEMA_VERSION",
    "KEY_VALIDATORS",
    "KEY_VALIDATOR_LABELS",
    "KEY_PENDING_VALIDATORS",
    "KEY_NOTIFIED_DUTIES",
    "KEY_DUTIES_CACHE",
    "KEY_MISSED_ATTESTATIONS",
    "KEY_NOTIFICATION_SETTINGS",
    "KEY_BEACON_URL",
    "KEY_BLOCK_DETAILS",
    "KEY_SCHEMA_VERSION",
]
