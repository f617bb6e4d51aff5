"""Chain time helpers."""

from .clock import SlotClock
from .constants import (
    MAINNET_GENESIS_TIME,
    SECONDS_PER_SLOT,
    SLOTS_PER_EPOCH,
    EPOCHS_PER_SYNC_COMMITTEE_PERIOD,
    MS_PER_MINUTE,
)

__all__ = [
    "SlotClock",
    "MAINNET_GENESIS_TIME",
    "SECONDS_PER_SLOT",
    "SLOTS_PER_EPOCH",
    "EPOCHS_PER_SYNC_COMMITTEE_PERIOD",
    "MS_PER_MINUTE",
]
