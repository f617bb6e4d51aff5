"""Beacon node access: REST client, response types and errors."""

from .exceptions import (
    BeaconError,
    BeaconAPIError,
    BlockNotFoundError,
    BeaconUnreachable,
    MalformedResponse,
)
from .types import BlockDetails, SyncCommittee, ValidatorInfo, Withdrawal
from .client import BeaconClient, DEFAULT_BEACON_URL
from .retry import RetryPolicy

__all__ = [
    "BeaconClient",
    "DEFAULT_BEACON_URL",
    "RetryPolicy",
    "BlockDetails",
    "SyncCommittee",
    "ValidatorInfo",
    "Withdrawal",
    "BeaconError",
    "BeaconAPIError",
    "BlockNotFoundError",
    "BeaconUnreachable",
    "MalformedResponse",
]
