"""Tracked validators and their duty records."""

from .types import (
    DutyKind,
    SyncPeriod,
    Validator,
    ProposerDuty,
    AttesterDuty,
    SyncCommitteeDuty,
    Duty,
)
from .exceptions import RegistryError, InvalidFormat, ResolutionFailed, DuplicateValidator
from .registry import (
    ValidatorRegistry,
    ImportSummary,
    COLOR_PALETTE,
    parse_validator_input,
    truncate_id,
)

__all__ = [
    "DutyKind",
    "SyncPeriod",
    "Validator",
    "ProposerDuty",
    "AttesterDuty",
    "SyncCommitteeDuty",
    "Duty",
    "RegistryError",
    "InvalidFormat",
    "ResolutionFailed",
    "DuplicateValidator",
    "ValidatorRegistry",
    "ImportSummary",
    "COLOR_PALETTE",
    "parse_validator_input",
    "truncate_id",
]
