"""Notification payload."""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..validators.types import DutyKind

KIND_TITLES = {
    DutyKind.PROPOSER: "Proposer",
    DutyKind.ATTESTER: "Attester",
    DutyKind.SYNC: "Sync Committee",
    DutyKind.MISSED: "Missed Attestation",
    DutyKind.BLOCK_CONFIRMED: "Block Confirmed",
}


@dataclass
class Notification:
    """A single alert handed to a NotificationSink.

    ``time_until`` holds the formatted countdown for upcoming duties, or a
    status word ('confirmed', 'missed', 'active') for the others.
    """

    kind: DutyKind
    validator_id: str
    validator_display: str
    slot: int
    time_until: str
    urgency: str
    minutes_until: Optional[int] = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return KIND_TITLES[DutyKind(self.kind)]
