"""Human-readable countdowns for duties."""

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from .chain import SlotClock
from .chain.constants import MS_PER_MINUTE
from .validators.types import DutyKind, SyncPeriod

if TYPE_CHECKING:
    from .duties import DutySet
    from .validators import ValidatorRegistry


def format_time_until(milliseconds: int) -> str:
    """Format a positive duration as ``1d 2h 3m 4s``; negative is 'Passed'."""
    if milliseconds < 0:
        return "Passed"
    total = milliseconds // 1000
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m {seconds}s"
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def format_time_ago(milliseconds: int) -> str:
    """Coarse elapsed time: only the largest unit."""
    seconds = milliseconds // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d"
    if hours > 0:
        return f"{hours}h"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def urgency_class(time_until_ms: int) -> str:
    minutes = time_until_ms / MS_PER_MINUTE
    if minutes < 1:
        return "critical"
    if minutes < 2:
        return "urgent"
    return ""


def notification_urgency(minutes_until: int) -> str:
    """Urgency for a notification sent ``minutes_until`` whole minutes ahead.

    Slot duties are only notified while at least one whole minute remains, so
    they are at most 'urgent'; 'critical' is reached only by callers that
    pass a sub-minute value.
    """
    if minutes_until < 1:
        return "critical"
    if minutes_until < 2:
        return "urgent"
    return "normal"


def slot_countdown(slot: int, clock: SlotClock, now: Optional[float] = None) -> str:
    """Countdown text for a slot, with its distance in blocks."""
    blocks = slot - clock.current_slot(now)
    if blocks == 0:
        return "Proposing now! | Current block"
    time_until = clock.time_until_slot(slot, now)
    distance = f"{abs(blocks)} block{'s' if abs(blocks) != 1 else ''}"
    if blocks < 0:
        return f"Passed {format_time_ago(-time_until)} ago | {distance}"
    return f"in {format_time_until(time_until)} | {distance}"


@dataclass
class CountdownRow:
    kind: DutyKind
    validator: str
    slot: Optional[int]
    text: str
    urgency: str
    past: bool = False


def countdown_rows(
    duties: "DutySet",
    registry: "ValidatorRegistry",
    clock: SlotClock,
    now: Optional[float] = None,
) -> list[CountdownRow]:
    """Rows for every duty: recent past proposals, then upcoming duties by slot."""
    rows = []
    for kind in (DutyKind.PROPOSER, DutyKind.ATTESTER):
        past, future = duties.partition(kind, clock, now)
        if kind is DutyKind.PROPOSER:
            for duty in past:
                rows.append(CountdownRow(
                    kind=kind,
                    validator=registry.display_label(str(duty.validator_index)),
                    slot=duty.slot,
                    text=slot_countdown(duty.slot, clock, now),
                    urgency="past",
                    past=True,
                ))
        for duty in future:
            time_until = clock.time_until_slot(duty.slot, now)
            rows.append(CountdownRow(
                kind=kind,
                validator=registry.display_label(str(duty.validator_index)),
                slot=duty.slot,
                text=slot_countdown(duty.slot, clock, now),
                urgency=urgency_class(time_until),
            ))

    current_epoch = clock.current_epoch(now)
    for duty in duties.sync:
        if duty.period is SyncPeriod.CURRENT:
            remaining = (duty.until_epoch - current_epoch) * clock.slots_per_epoch * clock.slot_duration_ms
            text = f"Active, ends in {format_time_until(remaining)} (epoch {duty.until_epoch})"
        else:
            remaining = (duty.from_epoch - current_epoch) * clock.slots_per_epoch * clock.slot_duration_ms
            text = f"Starts in {format_time_until(remaining)} (epoch {duty.from_epoch})"
        rows.append(CountdownRow(
            kind=DutyKind.SYNC,
            validator=registry.display_label(str(duty.validator_index)),
            slot=None,
            text=text,
            urgency="",
        ))
    return rows
