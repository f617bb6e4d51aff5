"""Rendering notifications for Telegram and the push relay."""

from .types import Notification
from ..validators.types import DutyKind

EXPLORER_URL = "https://beaconcha.in"


def validator_link(n: Notification) -> str:
    return f"[{n.validator_display}]({EXPLORER_URL}/validator/{n.validator_id})"


def slot_link(slot: int) -> str:
    return f"[{slot}]({EXPLORER_URL}/slot/{slot})"


def _in_minutes(minutes: int) -> str:
    return f"In {minutes} minute{'' if minutes == 1 else 's'}"


def short_address(address: str) -> str:
    if not address:
        return "Unknown"
    return f"{address[:10]}...{address[-8:]}"


def telegram_text(n: Notification) -> str:
    """Markdown message body for the Telegram Bot API."""
    kind = DutyKind(n.kind)
    validator = f"Validator: {validator_link(n)}"

    if kind is DutyKind.PROPOSER:
        return (
            f"🎉💰 BLOCK PROPOSAL! 🎉💰\n{_in_minutes(n.minutes_until or 0)}\n\n"
            f"{validator}\nSlot: {slot_link(n.slot)}"
        )
    if kind is DutyKind.ATTESTER:
        return (
            f"📝 Attestation Duty\n{_in_minutes(n.minutes_until or 0)}\n\n"
            f"{validator}\nSlot: {slot_link(n.slot)}"
        )
    if kind is DutyKind.SYNC:
        state = "Currently active" if n.details.get("period") == "current" else "Starting soon"
        return (
            f"🔐💎 SYNC COMMITTEE 💎🔐\n\n{validator}\n{state}\n"
            f"~27 hours of enhanced rewards"
        )
    if kind is DutyKind.MISSED:
        return (
            f"⚠️ Missed Attestation\n\n{validator}\nSlot: {slot_link(n.slot)}\n"
            f"Epoch: {n.details.get('epoch', n.slot // 32)}"
        )

    d = n.details
    lines = [
        "🎉💰 BLOCK CONFIRMED! 🎉💰",
        "",
        validator,
        f"Slot: {slot_link(n.slot)}",
        "",
        "📊 Block Details:",
        f"🔥 Burned Fees: {d.get('burned_fees', 0.0):.4f} ETH",
        f"💰 Fee Recipient: {short_address(d.get('fee_recipient', ''))}",
    ]
    if d.get("withdrawals"):
        lines.append(f"🏦 Withdrawals: {d['withdrawals']:.4f} ETH")
    if d.get("graffiti"):
        lines.append(f"✍️ Graffiti: {d['graffiti']}")
    lines += ["", "🎊 Congratulations! 🎊"]
    return "\n".join(lines)


def push_payload(n: Notification) -> dict:
    """JSON body accepted by the web push relay's notify endpoint."""
    duty = {"slot": n.slot, "timeUntil": n.time_until}
    if DutyKind(n.kind) is DutyKind.BLOCK_CONFIRMED:
        duty["blockDetails"] = n.details
    return {
        "type": n.title,
        "validator": n.validator_id,
        "validatorDisplay": n.validator_display,
        "duty": duty,
        "urgency": n.urgency,
    }
