"""Beacon API response types."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ValidatorInfo:
    """Validator as reported by /eth/v1/beacon/states/head/validators/{id}."""

    index: int
    pubkey: str
    status: str


@dataclass
class SyncCommittee:
    """Current and next sync committee membership (validator indices)."""

    current: list[int] = field(default_factory=list)
    next: list[int] = field(default_factory=list)


@dataclass
class Withdrawal:
    validator_index: int
    amount_gwei: int
    address: str


@dataclass
class BlockDetails:
    """Execution-side details of a proposed block."""

    slot: int
    proposer_index: int
    graffiti: str = ""
    fee_recipient: str = ""
    block_hash: str = ""
    block_number: Optional[int] = None
    base_fee_per_gas: int = 0
    gas_used: int = 0
    tx_count: int = 0
    withdrawals: list[Withdrawal] = field(default_factory=list)

    @property
    def burned_fees_eth(self) -> float:
        return self.base_fee_per_gas * self.gas_used / 10**18

    def withdrawals_for(self, validator_index: int) -> float:
        """Total ETH withdrawn to ``validator_index`` in this block."""
        gwei = sum(
            w.amount_gwei for w in self.withdrawals
            if w.validator_index == validator_index
        )
        return gwei / 10**9


def decode_graffiti(raw: str) -> str:
    """Decode a 0x-prefixed 32-byte graffiti field, dropping NUL padding."""
    if not raw:
        return ""
    try:
        data = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
    except ValueError:
        return ""
    return data.decode("utf-8", errors="replace").replace("\x00", "")
