"""Decides which duties to notify and dispatches them."""

import asyncio
import logging
import time
from typing import Callable, Optional, TYPE_CHECKING

from .ledger import NotificationLedger
from .settings import NotificationSettings
from .sinks import NotificationSink, deliver
from .types import Notification
from ..beacon import BeaconError
from ..chain import SlotClock
from ..chain.constants import MS_PER_MINUTE
from ..display import format_time_until, notification_urgency
from ..duties import DutySet
from ..store import Store
from ..validators.registry import ValidatorRegistry
from ..validators.types import DutyKind, SyncCommitteeDuty, SyncPeriod
from .. import metrics

if TYPE_CHECKING:
    from .missed import MissedAttestationTracker

logger = logging.getLogger(__name__)

SYNC_LEAD_MINUTES = 60


def sync_ledger_kind(period: SyncPeriod) -> str:
    """Ledger type for a sync duty.

    Upcoming and active notices of the same period are recorded separately.
    """
    return f"{DutyKind.SYNC.value}_{SyncPeriod(period).value}"


class NotificationScheduler:
    """Turns duties crossing their lead time into notifications.

    Each (kind, slot, validator) is notified at most once: the ledger entry
    is written and persisted before the sink is called, and a failed
    delivery is not rolled back.
    """

    def __init__(
        self,
        registry: ValidatorRegistry,
        ledger: NotificationLedger,
        sink: NotificationSink,
        clock: SlotClock,
        store: Store,
        get_duties: Callable[[], DutySet],
        missed: Optional["MissedAttestationTracker"] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self.sink = sink
        self.clock = clock
        self.store = store
        self.get_duties = get_duties
        self.missed = missed
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def tick(self, now: Optional[float] = None) -> list[Notification]:
        """Run one scheduling pass. Returns the notifications dispatched.

        A tick that starts while another is still running does nothing.
        """
        if self._in_flight:
            logger.debug("Scheduler tick skipped, previous tick still running")
            return []

        self._in_flight = True
        start = time.time()
        try:
            settings = NotificationSettings.load(self.store)
            notifications = self.plan(self.get_duties(), settings, now)
            if notifications:
                await asyncio.gather(*(deliver(self.sink, n) for n in notifications))

            if self.missed is not None:
                try:
                    await self.missed.check(settings, now)
                except BeaconError as e:
                    logger.warning(f"Missed attestation check failed: {e}")
            return notifications
        finally:
            self._in_flight = False
            metrics.scheduler_tick_time.observe(time.time() - start)

    def plan(
        self,
        duties: DutySet,
        settings: NotificationSettings,
        now: Optional[float] = None,
    ) -> list[Notification]:
        """Select due notifications and record them in the ledger."""
        if now is None:
            now = time.time()
        notifications = []

        for kind in (DutyKind.PROPOSER, DutyKind.ATTESTER):
            if not settings.enabled(kind):
                continue
            for duty in duties.of_kind(kind):
                notification = self._check_slot_duty(kind, duty, settings.lead_minutes, now)
                if notification:
                    notifications.append(notification)

        if settings.sync:
            for duty in duties.sync:
                notification = self._check_sync_duty(duty, settings.lead_minutes, now)
                if notification:
                    notifications.append(notification)

        return notifications

    def _check_slot_duty(self, kind: DutyKind, duty, lead_minutes: int, now: float) -> Optional[Notification]:
        validator = self.registry.match_duty(duty)
        if validator is None:
            return None

        time_until = self.clock.time_until_slot(duty.slot, now)
        minutes_until = time_until // MS_PER_MINUTE
        if not 0 < minutes_until <= lead_minutes:
            return None
        if not self.ledger.mark(kind, duty.slot, validator.id):
            return None

        urgency = notification_urgency(minutes_until)
        logger.info(
            f"Notifying {kind.value} duty: validator {validator.id}, slot {duty.slot}, "
            f"{minutes_until} minute(s) until"
        )
        return Notification(
            kind=kind,
            validator_id=validator.id,
            validator_display=self.registry.display(validator.id),
            slot=duty.slot,
            time_until=format_time_until(time_until),
            urgency=urgency,
            minutes_until=minutes_until,
        )

    def _check_sync_duty(self, duty: SyncCommitteeDuty, lead_minutes: int, now: float) -> Optional[Notification]:
        validator = self.registry.match_duty(duty)
        if validator is None:
            return None

        spe = self.clock.slots_per_epoch
        anchor = duty.anchor_slot(spe)
        ledger_kind = sync_ledger_kind(duty.period)
        if self.ledger.contains(ledger_kind, anchor, validator.id):
            return None

        current_slot = self.clock.current_slot(now)
        current_epoch = self.clock.epoch_of(current_slot)
        if duty.period is SyncPeriod.CURRENT:
            # Already active: notify on first sight.
            minutes_until = None
            time_until_text = "active"
            urgency = notification_urgency(SYNC_LEAD_MINUTES)
        else:
            slot = duty.synthetic_slot(current_slot, current_epoch, spe)
            time_until = self.clock.time_until_slot(slot, now)
            minutes_until = time_until // MS_PER_MINUTE
            if not 0 < minutes_until <= lead_minutes:
                return None
            time_until_text = format_time_until(time_until)
            urgency = notification_urgency(minutes_until)

        self.ledger.mark(ledger_kind, anchor, validator.id)
        logger.info(f"Notifying {duty.period.value} sync committee duty for validator {validator.id}")
        return Notification(
            kind=DutyKind.SYNC,
            validator_id=validator.id,
            validator_display=self.registry.display(validator.id),
            slot=anchor,
            time_until=time_until_text,
            urgency=urgency,
            minutes_until=minutes_until,
            details={
                "period": duty.period.value,
                "committee_index": duty.committee_index,
                "start_epoch": duty.start_epoch,
            },
        )
