"""One-time upgrades of persisted state written by older tracker versions.

Version 0 stored validators as bare strings (index or pubkey) or as
``{"id", "status", "lastChecked"}`` dicts, and notification preferences as
separate string flags. Version 1 stores one record per validator and a single
settings document.
"""

import logging

from .store import (
    Store,
    KEY_VALIDATORS,
    KEY_VALIDATOR_LABELS,
    KEY_PENDING_VALIDATORS,
    KEY_NOTIFICATION_SETTINGS,
    KEY_SCHEMA_VERSION,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_LEGACY_SETTING_KEYS = {
    "notifyProposer": "proposer",
    "notifyAttester": "attester",
    "notifySync": "sync",
}


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.lower() != "false"
    return bool(value)


def _migrate_validators(store: Store) -> None:
    raw = store.get(KEY_VALIDATORS, [])
    labels = store.get(KEY_VALIDATOR_LABELS, {}) or {}
    records = []
    pending = list(store.get(KEY_PENDING_VALIDATORS, []))
    seen = set()

    for entry in raw:
        if isinstance(entry, dict):
            validator_id = str(entry.get("id", "")).strip()
            status = entry.get("status")
        else:
            validator_id = str(entry).strip()
            status = None
        if not validator_id or validator_id in seen:
            continue
        seen.add(validator_id)

        if validator_id.startswith("0x"):
            # Pubkey ids need a beacon lookup; resolved on next startup.
            pending.append({"raw": validator_id, "label": labels.pop(validator_id, None)})
            continue

        records.append({
            "id": validator_id,
            "status": status,
            "pubkey": entry.get("pubkey") if isinstance(entry, dict) else None,
        })

    store.set(KEY_VALIDATORS, records)
    store.set(KEY_VALIDATOR_LABELS, labels)
    if pending:
        store.set(KEY_PENDING_VALIDATORS, pending)
        logger.info(f"Queued {len(pending)} pubkey validator(s) for index resolution")


def _migrate_settings(store: Store) -> None:
    if store.has(KEY_NOTIFICATION_SETTINGS):
        return
    settings = {}
    for legacy_key, field_name in _LEGACY_SETTING_KEYS.items():
        if store.has(legacy_key):
            settings[field_name] = _as_bool(store.get(legacy_key))
            store.delete(legacy_key)
    if store.has("notifyMinutes"):
        try:
            settings["lead_minutes"] = int(store.get("notifyMinutes"))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid legacy notifyMinutes value")
        store.delete("notifyMinutes")
    if settings:
        store.set(KEY_NOTIFICATION_SETTINGS, settings)


def _migrate_v0_to_v1(store: Store) -> None:
    _migrate_validators(store)
    _migrate_settings(store)


_MIGRATIONS = {
    0: _migrate_v0_to_v1,
}


def migrate(store: Store) -> int:
    """Bring ``store`` up to SCHEMA_VERSION. Returns the number of steps run."""
    version = int(store.get(KEY_SCHEMA_VERSION, 0))
    steps = 0
    while version < SCHEMA_VERSION:
        logger.info(f"Migrating store schema {version} -> {version + 1}")
        _MIGRATIONS[version](store)
        version += 1
        store.set(KEY_SCHEMA_VERSION, version)
        steps += 1
    return steps
