"""Tests for block confirmation and notification messages."""

import asyncio

import pytest

from conftest import proposer_duty
from dutywatch.beacon import BlockDetails, RetryPolicy, Withdrawal
from dutywatch.duties import DutySet
from dutywatch.notify import Notification, NotificationSettings, ProposalWatcher
from dutywatch.notify.messages import push_payload, telegram_text
from dutywatch.store import KEY_BLOCK_DETAILS
from dutywatch.validators import DutyKind


def block(slot, proposer, **kwargs):
    defaults = dict(
        graffiti="solo staker",
        fee_recipient="0x" + "ab" * 20,
        block_hash="0x" + "cd" * 32,
        block_number=19_000_000,
        base_fee_per_gas=20 * 10**9,
        gas_used=15_000_000,
        tx_count=150,
        withdrawals=[
            Withdrawal(validator_index=proposer, amount_gwei=17_000_000, address="0x01"),
            Withdrawal(validator_index=proposer, amount_gwei=3_000_000, address="0x01"),
            Withdrawal(validator_index=9, amount_gwei=5_000_000, address="0x02"),
        ],
    )
    defaults.update(kwargs)
    return BlockDetails(slot=slot, proposer_index=proposer, **defaults)


@pytest.fixture
def watcher(make_registry, beacon, store, clock, sink):
    registry = make_registry(1)
    return ProposalWatcher(
        beacon, registry, store, clock, sink,
        retry=RetryPolicy(max_retries=2, delay=0),
        confirm_delay=0,
    )


def test_block_details_derivations():
    details = block(10, 1)
    assert details.burned_fees_eth == pytest.approx(0.3)
    assert details.withdrawals_for(1) == pytest.approx(0.02)
    assert details.withdrawals_for(2) == 0


@pytest.mark.asyncio
async def test_confirm_stores_and_notifies(watcher, beacon, store, sink):
    beacon.blocks[500] = block(500, 1)
    record = await watcher.confirm(500, watcher.registry.get("1"))

    assert record["burned_fees"] == pytest.approx(0.3)
    assert record["withdrawals"] == pytest.approx(0.02)
    assert record["tx_count"] == 150
    assert store.get(KEY_BLOCK_DETAILS)["500"]["graffiti"] == "solo staker"

    notification = sink.notifications[0]
    assert notification.kind is DutyKind.BLOCK_CONFIRMED
    assert notification.urgency == "success"
    assert notification.time_until == "confirmed"


@pytest.mark.asyncio
async def test_confirm_once_per_slot(watcher, beacon, sink):
    beacon.blocks[500] = block(500, 1)
    await watcher.confirm(500, watcher.registry.get("1"))
    assert await watcher.confirm(500, watcher.registry.get("1")) is None
    assert len(sink.notifications) == 1
    assert len(beacon.calls_to("get_block_details")) == 1


@pytest.mark.asyncio
async def test_confirm_retries_then_gives_up(watcher, beacon, store, sink):
    assert await watcher.confirm(500, watcher.registry.get("1")) is None
    assert len(beacon.calls_to("get_block_details")) == 3
    assert not store.has(KEY_BLOCK_DETAILS)
    assert sink.notifications == []


@pytest.mark.asyncio
async def test_other_proposer_is_not_announced(watcher, beacon, sink):
    beacon.blocks[500] = block(500, 2)
    assert await watcher.confirm(500, watcher.registry.get("1")) is None
    assert sink.notifications == []


@pytest.mark.asyncio
async def test_notification_respects_proposer_setting(watcher, beacon, store, sink):
    NotificationSettings(proposer=False).save(store)
    beacon.blocks[500] = block(500, 1)
    assert await watcher.confirm(500, watcher.registry.get("1")) is not None
    assert sink.notifications == []


@pytest.mark.asyncio
async def test_on_countdown_starts_once(watcher, beacon, sink):
    beacon.blocks[500] = block(500, 1)
    duties = DutySet()
    duties.ingest(DutyKind.PROPOSER, [proposer_duty(500, 1), proposer_duty(510, 1)], watcher.registry)

    assert watcher.on_countdown(duties, now=499 * 12) == []
    assert watcher.on_countdown(duties, now=500 * 12) == [500]
    assert watcher.on_countdown(duties, now=500 * 12 + 1) == []
    await asyncio.gather(*watcher._tasks)
    assert [n.slot for n in sink.notifications] == [500]
    await watcher.close()


def test_clear_block_details(watcher, store):
    store.set(KEY_BLOCK_DETAILS, {"1": {}, "2": {}})
    watcher.clear_block_details(1)
    assert store.get(KEY_BLOCK_DETAILS) == {"2": {}}
    watcher.clear_block_details()
    assert not store.has(KEY_BLOCK_DETAILS)


class TestMessages:
    def notification(self, kind, **kwargs):
        defaults = dict(
            kind=kind,
            validator_id="12345",
            validator_display="12345 (0xabcdef01)",
            slot=9000,
            time_until="5m 0s",
            urgency="normal",
            minutes_until=5,
        )
        defaults.update(kwargs)
        return Notification(**defaults)

    def test_proposer(self):
        text = telegram_text(self.notification(DutyKind.PROPOSER))
        assert "BLOCK PROPOSAL" in text
        assert "In 5 minutes" in text
        assert "[12345 (0xabcdef01)](https://beaconcha.in/validator/12345)" in text
        assert "[9000](https://beaconcha.in/slot/9000)" in text

    def test_attester_singular_minute(self):
        text = telegram_text(self.notification(DutyKind.ATTESTER, minutes_until=1))
        assert "Attestation Duty" in text
        assert "In 1 minute\n" in text

    def test_sync(self):
        text = telegram_text(self.notification(DutyKind.SYNC, details={"period": "next"}))
        assert "SYNC COMMITTEE" in text
        assert "Starting soon" in text

    def test_block_confirmed(self):
        details = {"burned_fees": 0.3, "fee_recipient": "0x" + "ab" * 20, "graffiti": "hi", "withdrawals": 0.02}
        text = telegram_text(self.notification(DutyKind.BLOCK_CONFIRMED, details=details))
        assert "Burned Fees: 0.3000 ETH" in text
        assert "0xabababab...abababab" in text
        assert "Graffiti: hi" in text

    def test_push_payload(self):
        payload = push_payload(self.notification(DutyKind.PROPOSER, urgency="urgent"))
        assert payload == {
            "type": "Proposer",
            "validator": "12345",
            "validatorDisplay": "12345 (0xabcdef01)",
            "duty": {"slot": 9000, "timeUntil": "5m 0s"},
            "urgency": "urgent",
        }

    def test_push_payload_block_details(self):
        payload = push_payload(self.notification(
            DutyKind.BLOCK_CONFIRMED, time_until="confirmed", urgency="success", details={"tx_count": 3}
        ))
        assert payload["type"] == "Block Confirmed"
        assert payload["duty"]["blockDetails"] == {"tx_count": 3}
