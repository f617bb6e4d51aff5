"""Detection of attestations that were not included on chain."""

import logging
import time
from typing import Optional

from .settings import NotificationSettings
from .sinks import NotificationSink, deliver
from .types import Notification
from ..beacon import BeaconClient, MalformedResponse
from ..chain import SlotClock
from ..store import Store, KEY_MISSED_ATTESTATIONS
from ..validators.registry import ValidatorRegistry
from ..validators.types import AttesterDuty, DutyKind
from .. import metrics

logger = logging.getLogger(__name__)

RETENTION_MS = 7 * 24 * 60 * 60 * 1000
MIN_SLOTS_INTO_EPOCH = 2


class MissedAttestationTracker:
    """Checks the previous epoch's attestations once per epoch.

    Inclusion is taken from the beacon node's liveness endpoint. Each miss is
    recorded once under ``"{validator}:{slot}"`` and kept for seven days.
    """

    def __init__(
        self,
        client: BeaconClient,
        registry: ValidatorRegistry,
        store: Store,
        clock: SlotClock,
        sink: NotificationSink,
    ):
        self.client = client
        self.registry = registry
        self.store = store
        self.clock = clock
        self.sink = sink
        self.records: dict[str, dict] = {}
        self.last_checked_epoch: Optional[int] = None

    def load(self) -> None:
        data = self.store.get(KEY_MISSED_ATTESTATIONS) or {}
        self.records = dict(data.get("records", {}))
        self.last_checked_epoch = data.get("last_checked_epoch")

    def save(self) -> None:
        self.store.set(KEY_MISSED_ATTESTATIONS, {
            "records": self.records,
            "last_checked_epoch": self.last_checked_epoch,
        })

    @staticmethod
    def key(validator_id: str, slot: int) -> str:
        return f"{validator_id}:{slot}"

    def due_epoch(self, now: Optional[float] = None) -> Optional[int]:
        """Epoch to check now, or None if it is too early or already done."""
        slot = self.clock.current_slot(now)
        if self.clock.slot_in_epoch(slot) < MIN_SLOTS_INTO_EPOCH:
            return None
        previous = self.clock.epoch_of(slot) - 1
        if previous < 0 or previous == self.last_checked_epoch:
            return None
        return previous

    def prune(self, now: Optional[float] = None) -> int:
        cutoff = int((time.time() if now is None else now) * 1000) - RETENTION_MS
        stale = [k for k, r in self.records.items() if r.get("timestamp", 0) < cutoff]
        for key in stale:
            del self.records[key]
        return len(stale)

    async def check(self, settings: NotificationSettings, now: Optional[float] = None) -> list[dict]:
        """Check the previous epoch if due. Returns newly recorded misses."""
        epoch = self.due_epoch(now)
        if epoch is None or not len(self.registry):
            return []

        raw = await self.client.get_attester_duties(epoch, self.registry.ids())
        try:
            duties = [AttesterDuty.from_api(r) for r in raw]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid attester duty for epoch {epoch}: {e}") from e
        duties = [d for d in duties if self.registry.match_duty(d, warn=False)]
        liveness = await self.client.get_liveness(
            epoch, sorted({str(d.validator_index) for d in duties})
        )

        timestamp = int((time.time() if now is None else now) * 1000)
        missed = []
        for duty in duties:
            if liveness.get(duty.validator_index, True):
                continue
            key = self.key(str(duty.validator_index), duty.slot)
            if key in self.records:
                continue
            record = {
                "validator": str(duty.validator_index),
                "slot": duty.slot,
                "epoch": epoch,
                "timestamp": timestamp,
            }
            self.records[key] = record
            missed.append(record)
            metrics.record_missed_attestation()
            logger.warning(f"Validator {duty.validator_index} missed its attestation at slot {duty.slot}")

        self.last_checked_epoch = epoch
        pruned = self.prune(now)
        if pruned:
            logger.debug(f"Pruned {pruned} missed attestation record(s)")
        self.save()

        if settings.missed:
            for record in missed:
                await deliver(self.sink, Notification(
                    kind=DutyKind.MISSED,
                    validator_id=record["validator"],
                    validator_display=self.registry.display(record["validator"]),
                    slot=record["slot"],
                    time_until="missed",
                    urgency="urgent",
                    details={"epoch": epoch},
                ))
        return missed
