"""Shared fixtures: fake beacon node, recording sink, temporary store."""

from typing import Optional

import pytest

from dutywatch.beacon import (
    BeaconUnreachable,
    BlockDetails,
    BlockNotFoundError,
    SyncCommittee,
    ValidatorInfo,
)
from dutywatch.chain import SlotClock
from dutywatch.notify import NotificationDeliveryFailed, NotificationSink
from dutywatch.store import Store, KEY_VALIDATORS
from dutywatch.validators import ValidatorRegistry


def pubkey_for(index: int) -> str:
    return "0x" + f"{index:096x}"


def proposer_duty(slot: int, index: int, pubkey: Optional[str] = None) -> dict:
    return {
        "pubkey": pubkey or pubkey_for(index),
        "validator_index": str(index),
        "slot": str(slot),
    }


def attester_duty(slot: int, index: int, committee_index: int = 0, position: int = 0) -> dict:
    return {
        "pubkey": pubkey_for(index),
        "validator_index": str(index),
        "committee_index": str(committee_index),
        "committee_length": "128",
        "committees_at_slot": "4",
        "validator_committee_index": str(position),
        "slot": str(slot),
    }


class FakeBeaconClient:
    """In-memory stand-in for BeaconClient."""

    def __init__(self, head_slot: int = 0, genesis_time: int = 0):
        self.base_url = "http://beacon.test"
        self.head_slot = head_slot
        self.genesis_time = genesis_time
        self.validators: dict[int, ValidatorInfo] = {}
        self.proposer_duties: dict[int, list[dict]] = {}
        self.attester_duties: dict[int, list[dict]] = {}
        self.sync_committee = SyncCommittee()
        self.liveness: dict[int, bool] = {}
        self.blocks: dict[int, BlockDetails] = {}
        self.unreachable = False
        self.calls: list[tuple] = []
        self.closed = False

    def add_validator(self, index: int, pubkey: Optional[str] = None, status: str = "active_ongoing") -> ValidatorInfo:
        info = ValidatorInfo(index=index, pubkey=pubkey or pubkey_for(index), status=status)
        self.validators[index] = info
        return info

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.unreachable:
            raise BeaconUnreachable(self.base_url, "connection refused")

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def get_current_slot(self) -> int:
        self._call("get_current_slot")
        return self.head_slot

    async def get_genesis(self) -> int:
        self._call("get_genesis")
        return self.genesis_time

    async def get_proposer_duties(self, epoch: int) -> list[dict]:
        self._call("get_proposer_duties", epoch)
        return list(self.proposer_duties.get(epoch, []))

    async def get_attester_duties(self, epoch: int, validator_ids: list[str]) -> list[dict]:
        self._call("get_attester_duties", epoch, tuple(validator_ids))
        wanted = {str(v) for v in validator_ids}
        return [d for d in self.attester_duties.get(epoch, []) if d["validator_index"] in wanted]

    async def get_sync_committee(self, epoch: int) -> SyncCommittee:
        self._call("get_sync_committee", epoch)
        return self.sync_committee

    async def get_validator_info(self, validator_id: str) -> Optional[ValidatorInfo]:
        self._call("get_validator_info", validator_id)
        if validator_id.startswith("0x"):
            for info in self.validators.values():
                if info.pubkey.lower() == validator_id.lower():
                    return info
            return None
        return self.validators.get(int(validator_id))

    async def get_block_details(self, slot: int) -> BlockDetails:
        self._call("get_block_details", slot)
        if slot not in self.blocks:
            raise BlockNotFoundError(f"Block not found: {slot}")
        return self.blocks[slot]

    async def get_liveness(self, epoch: int, validator_ids: list[str]) -> dict[int, bool]:
        self._call("get_liveness", epoch, tuple(validator_ids))
        return {int(v): self.liveness.get(int(v), True) for v in validator_ids}

    async def close(self) -> None:
        self.closed = True


class RecordingSink(NotificationSink):
    """Keeps every notification it is given; fails on demand."""

    name = "recording"

    def __init__(self):
        self.notifications = []
        self.fail = False
        self.closed = False

    async def notify(self, notification) -> None:
        self.notifications.append(notification)
        if self.fail:
            raise NotificationDeliveryFailed(self.name, "simulated failure")

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store(tmp_path):
    s = Store(str(tmp_path))
    yield s
    s.close()


@pytest.fixture
def clock():
    """Clock with genesis at t=0, so slot N starts at N * 12."""
    return SlotClock(genesis_time=0)


@pytest.fixture
def beacon():
    return FakeBeaconClient()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_registry(store, beacon):
    """Build a registry already tracking the given validator indices."""

    def make(*indices: int) -> ValidatorRegistry:
        for index in indices:
            beacon.add_validator(index)
        store.set(KEY_VALIDATORS, [
            {"id": str(i), "pubkey": pubkey_for(i), "status": "active_ongoing"}
            for i in indices
        ])
        registry = ValidatorRegistry(store, beacon)
        registry.load()
        return registry

    return make
