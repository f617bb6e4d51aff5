"""Duties of tracked validators, grouped by kind."""

import logging
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from ..beacon import SyncCommittee, MalformedResponse
from ..chain import SlotClock
from ..chain.constants import EPOCHS_PER_SYNC_COMMITTEE_PERIOD
from ..validators.types import (
    AttesterDuty,
    DutyKind,
    ProposerDuty,
    SyncCommitteeDuty,
    SyncPeriod,
)

if TYPE_CHECKING:
    from ..validators.registry import ValidatorRegistry

logger = logging.getLogger(__name__)

RECENT_PAST_PROPOSALS = 3

_PARSERS = {
    DutyKind.PROPOSER: ProposerDuty.from_api,
    DutyKind.ATTESTER: AttesterDuty.from_api,
}


def _dedup_key(kind: DutyKind, duty) -> tuple:
    if kind is DutyKind.PROPOSER:
        return (duty.slot,)
    return (duty.slot, duty.validator_index)


@dataclass
class DutySet:
    """Proposer, attester and sync committee duties.

    Every collection only holds duties that matched a tracked validator at
    ingest time. Proposer and attester lists are sorted by slot.
    """

    proposer: list[ProposerDuty] = field(default_factory=list)
    attester: list[AttesterDuty] = field(default_factory=list)
    sync: list[SyncCommitteeDuty] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.proposer) + len(self.attester) + len(self.sync)

    def of_kind(self, kind: DutyKind) -> list:
        if kind is DutyKind.PROPOSER:
            return self.proposer
        if kind is DutyKind.ATTESTER:
            return self.attester
        if kind is DutyKind.SYNC:
            return self.sync
        raise ValueError(f"No duty collection for {kind}")

    def counts(self) -> dict[str, int]:
        return {
            DutyKind.PROPOSER.value: len(self.proposer),
            DutyKind.ATTESTER.value: len(self.attester),
            DutyKind.SYNC.value: len(self.sync),
        }

    def ingest(self, kind: DutyKind, raw_duties: list[dict], registry: "ValidatorRegistry") -> int:
        """Replace the ``kind`` collection with the tracked subset of ``raw_duties``.

        Returns the number of duties kept.
        """
        kind = DutyKind(kind)
        parse = _PARSERS.get(kind)
        if parse is None:
            raise ValueError(f"Use ingest_sync for {kind.value} duties")

        kept: dict[tuple, object] = {}
        for raw in raw_duties:
            try:
                duty = parse(raw)
            except (KeyError, TypeError, ValueError) as e:
                raise MalformedResponse(f"Invalid {kind.value} duty {raw!r}: {e}") from e
            if registry.match_duty(duty, warn=False) is None:
                continue
            kept.setdefault(_dedup_key(kind, duty), duty)

        duties = sorted(kept.values(), key=lambda d: (d.slot, d.validator_index))
        if kind is DutyKind.PROPOSER:
            self.proposer = duties
        else:
            self.attester = duties
        logger.debug(f"Kept {len(duties)} of {len(raw_duties)} {kind.value} duties")
        return len(duties)

    def ingest_sync(self, committee: SyncCommittee, current_epoch: int, registry: "ValidatorRegistry") -> int:
        """Derive sync duties from current and next committee membership."""
        period = SlotClock.sync_period_of(current_epoch)
        boundary = (period + 1) * EPOCHS_PER_SYNC_COMMITTEE_PERIOD
        current_positions = {idx: pos for pos, idx in reversed(list(enumerate(committee.current)))}
        next_positions = {idx: pos for pos, idx in reversed(list(enumerate(committee.next)))}

        duties = []
        for validator in registry:
            index = validator.index
            if index in current_positions:
                duties.append(SyncCommitteeDuty(
                    validator_index=index,
                    period=SyncPeriod.CURRENT,
                    committee_index=current_positions[index],
                    until_epoch=boundary,
                    pubkey=validator.pubkey,
                ))
            if index in next_positions:
                duties.append(SyncCommitteeDuty(
                    validator_index=index,
                    period=SyncPeriod.NEXT,
                    committee_index=next_positions[index],
                    from_epoch=boundary,
                    pubkey=validator.pubkey,
                ))
        self.sync = duties
        return len(duties)

    def merge_proposer(self, duties: list[ProposerDuty]) -> int:
        """Add proposer duties not already present (by slot). Returns how many were added."""
        known = {d.slot for d in self.proposer}
        added = [d for d in duties if d.slot not in known]
        if added:
            self.proposer = sorted(self.proposer + added, key=lambda d: d.slot)
        return len(added)

    def partition(
        self,
        kind: DutyKind,
        clock: SlotClock,
        now: Optional[float] = None,
    ) -> tuple[list, list]:
        """Split a collection into (past, future) around the current slot.

        Past proposer duties are limited to the most recent few, newest first.
        Sync duties have no single slot and are always upcoming.
        """
        kind = DutyKind(kind)
        if kind is DutyKind.SYNC:
            return [], list(self.sync)

        current_slot = clock.current_slot(now)
        past, future = [], []
        for duty in self.of_kind(kind):
            (past if duty.slot < current_slot else future).append(duty)

        past.sort(key=lambda d: d.slot, reverse=True)
        future.sort(key=lambda d: d.slot)
        if kind is DutyKind.PROPOSER:
            past = past[:RECENT_PAST_PROPOSALS]
        return past, future

    def to_dict(self) -> dict:
        return {
            "proposer": [d.to_dict() for d in self.proposer],
            "attester": [d.to_dict() for d in self.attester],
            "sync": [d.to_dict() for d in self.sync],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DutySet":
        return cls(
            proposer=[ProposerDuty.from_dict(d) for d in data.get("proposer", [])],
            attester=[AttesterDuty.from_dict(d) for d in data.get("attester", [])],
            sync=[SyncCommitteeDuty.from_dict(d) for d in data.get("sync", [])],
        )
