"""JSON export and import of tracked validators and settings."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .exceptions import DuplicateValidator, RegistryError
from .registry import ValidatorRegistry
from ..notify.settings import NotificationSettings
from ..store import KEY_BEACON_URL

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.1"


class ImportFormatError(ValueError):
    """The document is not a tracker export."""


@dataclass
class ImportResult:
    added: int = 0
    failed: int = 0
    settings_restored: bool = False
    errors: list[str] = field(default_factory=list)

    def describe(self) -> str:
        if not self.added and not self.settings_restored:
            return "No new validators or settings imported"
        message = ""
        if self.added:
            message = f"Imported {self.added} validator(s)"
            if self.failed:
                message += f", {self.failed} failed"
        if self.settings_restored:
            message += (" and " if message else "Imported ") + "settings"
        return message


def export_document(
    registry: ValidatorRegistry,
    settings: NotificationSettings,
    beacon_url: str,
    auto_refresh: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    """Build an export document from the registry and settings."""
    if now is None:
        now = datetime.now(timezone.utc)
    validators = []
    for validator in registry:
        entry = {"index": validator.index, "label": registry.get_label(validator.id) or ""}
        if validator.pubkey:
            entry["pubkey"] = validator.pubkey
        validators.append(entry)

    return {
        "version": EXPORT_FORMAT_VERSION,
        "exportDate": now.isoformat().replace("+00:00", "Z"),
        "settings": {
            "beaconUrl": beacon_url,
            "notifications": {
                "proposer": settings.proposer,
                "attester": settings.attester,
                "sync": settings.sync,
                "missed": settings.missed,
                "minutesBefore": settings.lead_minutes,
            },
            "telegram": {
                "enabled": bool(settings.telegram_chat_id),
                "chatId": settings.telegram_chat_id or "",
            },
            "autoRefresh": auto_refresh,
        },
        "validators": validators,
    }


def _restore_settings(document: dict, registry: ValidatorRegistry, settings: NotificationSettings) -> bool:
    data = document.get("settings")
    if not isinstance(data, dict):
        return False

    if data.get("beaconUrl"):
        registry.store.set(KEY_BEACON_URL, data["beaconUrl"])

    notifications = data.get("notifications") or {}
    if notifications:
        settings.proposer = bool(notifications.get("proposer", False))
        settings.attester = bool(notifications.get("attester", False))
        settings.sync = bool(notifications.get("sync", False))
        settings.missed = bool(notifications.get("missed", settings.missed))
        minutes = notifications.get("minutesBefore")
        if isinstance(minutes, int) and minutes >= 1:
            settings.lead_minutes = minutes

    telegram = data.get("telegram") or {}
    if telegram.get("chatId"):
        settings.telegram_chat_id = str(telegram["chatId"])

    settings.save(registry.store)
    return True


async def import_document(document: dict, registry: ValidatorRegistry) -> ImportResult:
    """Restore settings and add every validator listed in ``document``.

    Entries are resolved against the beacon node like any other add, so an
    unreachable node counts them as failed rather than storing them blind.
    """
    if not isinstance(document, dict) or not isinstance(document.get("validators"), list):
        raise ImportFormatError("Invalid file format")

    result = ImportResult()
    settings = NotificationSettings.load(registry.store)
    result.settings_restored = _restore_settings(document, registry, settings)

    for item in document["validators"]:
        index = item.get("index") if isinstance(item, dict) else None
        if index is None:
            result.failed += 1
            result.errors.append(f"{item!r}: missing index")
            continue
        try:
            validator = await registry.add(str(index))
        except DuplicateValidator:
            continue
        except RegistryError as e:
            result.failed += 1
            result.errors.append(str(e))
            continue
        if item.get("label"):
            registry.set_label(validator.id, item["label"])
        result.added += 1

    logger.info(result.describe())
    return result
