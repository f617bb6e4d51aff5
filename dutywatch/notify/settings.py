"""User notification preferences, persisted in the store."""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Optional

from ..store import Store, KEY_NOTIFICATION_SETTINGS
from ..validators.types import DutyKind

logger = logging.getLogger(__name__)

DEFAULT_LEAD_MINUTES = 10


@dataclass
class NotificationSettings:
    """Which duty kinds notify, and how many minutes ahead."""

    proposer: bool = True
    attester: bool = True
    sync: bool = True
    missed: bool = False
    lead_minutes: int = DEFAULT_LEAD_MINUTES
    telegram_chat_id: Optional[str] = None

    def __post_init__(self):
        if self.lead_minutes < 1:
            raise ValueError(f"lead_minutes must be at least 1, got {self.lead_minutes}")

    def enabled(self, kind: DutyKind) -> bool:
        if kind is DutyKind.BLOCK_CONFIRMED:
            return self.proposer
        return bool(getattr(self, DutyKind(kind).value, False))

    @classmethod
    def load(cls, store: Store) -> "NotificationSettings":
        data = store.get(KEY_NOTIFICATION_SETTINGS) or {}
        known = {f.name for f in fields(cls)}
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid stored notification settings, using defaults: {e}")
            return cls()

    def save(self, store: Store) -> None:
        store.set(KEY_NOTIFICATION_SETTINGS, asdict(self))
