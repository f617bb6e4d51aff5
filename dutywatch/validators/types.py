"""Validator and duty records."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Union

from ..chain.constants import EPOCHS_PER_SYNC_COMMITTEE_PERIOD


class DutyKind(str, Enum):
    """Duty and notification kinds."""

    PROPOSER = "proposer"
    ATTESTER = "attester"
    SYNC = "sync"
    MISSED = "missed"
    BLOCK_CONFIRMED = "block_confirmed"


class SyncPeriod(str, Enum):
    CURRENT = "current"
    NEXT = "next"


@dataclass
class Validator:
    """A tracked validator.

    ``id`` is always the decimal validator index; pubkey input is resolved
    before a Validator is created.
    """

    id: str
    color: str
    pubkey: Optional[str] = None
    status: Optional[str] = None
    label: Optional[str] = None

    @property
    def index(self) -> int:
        return int(self.id)

    def to_record(self) -> dict:
        return {"id": self.id, "pubkey": self.pubkey, "status": self.status}


@dataclass
class ProposerDuty:
    """Proposer duty for a slot."""

    slot: int
    validator_index: int
    pubkey: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict) -> "ProposerDuty":
        return cls(
            slot=int(raw["slot"]),
            validator_index=int(raw["validator_index"]),
            pubkey=raw.get("pubkey"),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ProposerDuty":
        return cls(**data)


@dataclass
class AttesterDuty:
    """Attester duty for a slot."""

    slot: int
    validator_index: int
    committee_index: int
    committee_position: int
    committee_length: int = 0
    committees_at_slot: int = 0
    pubkey: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict) -> "AttesterDuty":
        return cls(
            slot=int(raw["slot"]),
            validator_index=int(raw["validator_index"]),
            committee_index=int(raw["committee_index"]),
            committee_position=int(raw["validator_committee_index"]),
            committee_length=int(raw.get("committee_length", 0)),
            committees_at_slot=int(raw.get("committees_at_slot", 0)),
            pubkey=raw.get("pubkey"),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AttesterDuty":
        return cls(**data)


@dataclass
class SyncCommitteeDuty:
    """Membership of a validator in the current or next sync committee.

    Current-period duties carry ``until_epoch`` (first epoch after the period),
    next-period duties carry ``from_epoch`` (first epoch of the period).
    """

    validator_index: int
    period: SyncPeriod
    committee_index: int
    until_epoch: Optional[int] = None
    from_epoch: Optional[int] = None
    pubkey: Optional[str] = None

    def __post_init__(self):
        self.period = SyncPeriod(self.period)

    @property
    def start_epoch(self) -> int:
        if self.period is SyncPeriod.CURRENT:
            return self.until_epoch - EPOCHS_PER_SYNC_COMMITTEE_PERIOD
        return self.from_epoch

    def anchor_slot(self, slots_per_epoch: int) -> int:
        """First slot of the duty's period; stable for the whole period."""
        return self.start_epoch * slots_per_epoch

    def synthetic_slot(self, current_slot: int, current_epoch: int, slots_per_epoch: int) -> int:
        """Slot used for lead-time checks at the moment of checking."""
        if self.period is SyncPeriod.CURRENT:
            return current_slot
        return current_slot + (self.from_epoch - current_epoch) * slots_per_epoch

    def to_dict(self) -> dict:
        data = asdict(self)
        data["period"] = self.period.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SyncCommitteeDuty":
        return cls(**data)


Duty = Union[ProposerDuty, AttesterDuty, SyncCommitteeDuty]
