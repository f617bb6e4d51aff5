"""Tests for DutySet ingestion, partitioning and serialisation."""

import pytest

from conftest import attester_duty, proposer_duty
from dutywatch.beacon import MalformedResponse, SyncCommittee
from dutywatch.duties import DutySet
from dutywatch.validators import DutyKind, ProposerDuty, SyncCommitteeDuty, SyncPeriod


def test_ingest_proposer_filters_dedups_and_sorts(make_registry):
    registry = make_registry(1, 2)
    duties = DutySet()
    kept = duties.ingest(DutyKind.PROPOSER, [
        proposer_duty(40, 2),
        proposer_duty(33, 1),
        proposer_duty(34, 999),
        proposer_duty(33, 1),
    ], registry)
    assert kept == 2
    assert [d.slot for d in duties.proposer] == [33, 40]


def test_ingest_attester_dedups_by_slot_and_validator(make_registry):
    registry = make_registry(1, 2)
    duties = DutySet()
    duties.ingest(DutyKind.ATTESTER, [
        attester_duty(50, 1),
        attester_duty(50, 2),
        attester_duty(50, 1, committee_index=3),
        attester_duty(45, 2),
    ], registry)
    assert [(d.slot, d.validator_index) for d in duties.attester] == [(45, 2), (50, 1), (50, 2)]
    assert duties.attester[1].committee_index == 0


def test_ingest_replaces_collection(make_registry):
    registry = make_registry(1)
    duties = DutySet()
    duties.ingest(DutyKind.PROPOSER, [proposer_duty(10, 1)], registry)
    duties.ingest(DutyKind.PROPOSER, [proposer_duty(20, 1)], registry)
    assert [d.slot for d in duties.proposer] == [20]


def test_ingest_rejects_malformed(make_registry):
    registry = make_registry(1)
    with pytest.raises(MalformedResponse):
        DutySet().ingest(DutyKind.PROPOSER, [{"slot": "x"}], registry)


def test_ingest_sync_uses_period_boundaries(make_registry):
    registry = make_registry(1, 2, 3)
    duties = DutySet()
    committee = SyncCommittee(current=[7, 1, 8], next=[2, 1])
    duties.ingest_sync(committee, current_epoch=300, registry=registry)

    by_key = {(d.validator_index, d.period): d for d in duties.sync}
    assert set(by_key) == {(1, SyncPeriod.CURRENT), (1, SyncPeriod.NEXT), (2, SyncPeriod.NEXT)}
    current = by_key[(1, SyncPeriod.CURRENT)]
    assert current.until_epoch == 512
    assert current.committee_index == 1
    assert current.start_epoch == 256
    upcoming = by_key[(2, SyncPeriod.NEXT)]
    assert upcoming.from_epoch == 512
    assert upcoming.anchor_slot(32) == 512 * 32


def test_next_period_synthetic_slot():
    duty = SyncCommitteeDuty(validator_index=1, period="next", committee_index=0, from_epoch=105)
    assert duty.synthetic_slot(current_slot=3200, current_epoch=100, slots_per_epoch=32) == 3360


def test_current_period_synthetic_slot_is_current_slot():
    duty = SyncCommitteeDuty(validator_index=1, period=SyncPeriod.CURRENT, committee_index=0, until_epoch=512)
    assert duty.synthetic_slot(3210, 100, 32) == 3210


def test_partition_keeps_three_recent_past_proposals(make_registry, clock):
    registry = make_registry(1)
    duties = DutySet()
    duties.ingest(DutyKind.PROPOSER, [proposer_duty(s, 1) for s in (10, 20, 30, 40, 50, 60, 70)], registry)

    past, future = duties.partition(DutyKind.PROPOSER, clock, now=55 * 12)
    assert [d.slot for d in past] == [50, 40, 30]
    assert [d.slot for d in future] == [60, 70]


def test_partition_current_slot_is_future(make_registry, clock):
    registry = make_registry(1)
    duties = DutySet()
    duties.ingest(DutyKind.ATTESTER, [attester_duty(s, 1) for s in (8, 9, 10, 11)], registry)
    past, future = duties.partition(DutyKind.ATTESTER, clock, now=10 * 12)
    assert [d.slot for d in past] == [9, 8]
    assert [d.slot for d in future] == [10, 11]


def test_round_trip_equality(make_registry):
    registry = make_registry(1, 2)
    duties = DutySet()
    duties.ingest(DutyKind.PROPOSER, [proposer_duty(10, 1)], registry)
    duties.ingest(DutyKind.ATTESTER, [attester_duty(11, 2)], registry)
    duties.ingest_sync(SyncCommittee(current=[1], next=[2]), 10, registry)

    restored = DutySet.from_dict(duties.to_dict())
    assert restored == duties
    assert restored.counts() == {"proposer": 1, "attester": 1, "sync": 2}
    assert restored.sync[0].period is SyncPeriod.CURRENT


def test_merge_proposer():
    duties = DutySet(proposer=[ProposerDuty(slot=10, validator_index=1)])
    added = duties.merge_proposer([ProposerDuty(slot=5, validator_index=2), ProposerDuty(slot=10, validator_index=2)])
    assert added == 1
    assert [d.slot for d in duties.proposer] == [5, 10]
