"""Wall-clock to slot/epoch conversion."""

import time
from dataclasses import dataclass
from typing import Optional

from .constants import (
    MAINNET_GENESIS_TIME,
    SECONDS_PER_SLOT,
    SLOTS_PER_EPOCH,
    EPOCHS_PER_SYNC_COMMITTEE_PERIOD,
    MS_PER_SECOND,
)


@dataclass(frozen=True)
class SlotClock:
    """Maps Unix time onto chain slots.

    Every method takes an optional ``now`` (Unix seconds). When omitted the
    current time is read, so callers must not hold on to results across
    scheduling decisions.
    """

    genesis_time: int = MAINNET_GENESIS_TIME
    seconds_per_slot: int = SECONDS_PER_SLOT
    slots_per_epoch: int = SLOTS_PER_EPOCH

    @property
    def slot_duration_ms(self) -> int:
        return self.seconds_per_slot * MS_PER_SECOND

    def current_slot(self, now: Optional[float] = None) -> int:
        """Return the slot containing ``now``."""
        if now is None:
            now = time.time()
        return int((now - self.genesis_time) // self.seconds_per_slot)

    def current_epoch(self, now: Optional[float] = None) -> int:
        return self.epoch_of(self.current_slot(now))

    def time_until_slot(self, slot: int, now: Optional[float] = None) -> int:
        """Return milliseconds until ``slot``, negative once it has passed.

        Granularity is one slot: the value is the slot distance times the
        slot duration, so it is zero for the current slot.
        """
        return (slot - self.current_slot(now)) * self.slot_duration_ms

    def epoch_of(self, slot: int) -> int:
        return slot // self.slots_per_epoch

    def epoch_start_slot(self, epoch: int) -> int:
        return epoch * self.slots_per_epoch

    def slot_in_epoch(self, slot: int) -> int:
        return slot % self.slots_per_epoch

    def slot_start_time(self, slot: int) -> int:
        """Return the Unix time at which ``slot`` starts."""
        return self.genesis_time + slot * self.seconds_per_slot

    @staticmethod
    def sync_period_of(epoch: int) -> int:
        return epoch // EPOCHS_PER_SYNC_COMMITTEE_PERIOD
