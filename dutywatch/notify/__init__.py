"""Notification scheduling and delivery."""

from .exceptions import NotificationDeliveryFailed
from .types import Notification, KIND_TITLES
from .settings import NotificationSettings, DEFAULT_LEAD_MINUTES
from .ledger import NotificationLedger
from .sinks import (
    NotificationSink,
    LogSink,
    TelegramSink,
    PushRelaySink,
    MultiSink,
    deliver,
)
from .scheduler import NotificationScheduler
from .missed import MissedAttestationTracker
from .proposals import ProposalWatcher

__all__ = [
    "NotificationDeliveryFailed",
    "Notification",
    "KIND_TITLES",
    "NotificationSettings",
    "DEFAULT_LEAD_MINUTES",
    "NotificationLedger",
    "NotificationSink",
    "LogSink",
    "TelegramSink",
    "PushRelaySink",
    "MultiSink",
    "deliver",
    "NotificationScheduler",
    "MissedAttestationTracker",
    "ProposalWatcher",
]
