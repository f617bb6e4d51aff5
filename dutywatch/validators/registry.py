"""Registry of tracked validators."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from .exceptions import DuplicateValidator, InvalidFormat, RegistryError, ResolutionFailed
from .types import Duty, Validator
from ..beacon import BeaconClient, BeaconError, BeaconUnreachable
from ..store import Store, KEY_VALIDATORS, KEY_VALIDATOR_LABELS, KEY_PENDING_VALIDATORS
from .. import metrics

logger = logging.getLogger(__name__)

COLOR_PALETTE = [
    "#3b82f6", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6",
    "#ec4899", "#14b8a6", "#f97316", "#06b6d4", "#84cc16",
]
DEFAULT_COLOR = "#6b7280"

INDEX_RE = re.compile(r"^(0|[1-9][0-9]*)$")
PUBKEY_RE = re.compile(r"^0x[a-fA-F0-9]{96}$")
BATCH_SEPARATORS_RE = re.compile(r"[,;\n]+")


def parse_validator_input(raw: str) -> tuple[str, str]:
    """Classify raw input as ('index', value) or ('pubkey', value).

    Raises InvalidFormat for anything else.
    """
    value = raw.strip()
    if INDEX_RE.match(value):
        return "index", value
    if PUBKEY_RE.match(value):
        return "pubkey", value.lower()
    raise InvalidFormat(raw)


def truncate_id(validator_id: str) -> str:
    if validator_id.startswith("0x") and len(validator_id) > 20:
        return f"{validator_id[:10]}...{validator_id[-8:]}"
    return validator_id


@dataclass
class ImportSummary:
    """Outcome of a batch add."""

    added: list[str] = field(default_factory=list)
    invalid: int = 0
    failed: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return self.invalid + self.failed

    def describe(self) -> str:
        if not self.added:
            if self.invalid and not self.failed:
                return f"All {self.invalid} entries have invalid format"
            if self.failed:
                return "No validators could be added. Check beacon node connection."
            if self.duplicates:
                return "All validators are already tracked"
            return "No valid validators found"
        message = f"Added {len(self.added)} validator(s)"
        if self.rejected:
            message += f", {self.rejected} failed"
        return message


class ValidatorRegistry:
    """Tracked validators with their labels and display colours.

    Validators are stored by index in insertion order. Colours are assigned
    from a fixed palette and stay stable for the lifetime of the registry.
    """

    def __init__(self, store: Store, client: BeaconClient):
        self.store = store
        self.client = client
        self._validators: dict[str, Validator] = {}
        self._by_pubkey: dict[str, str] = {}
        self._colors: dict[str, str] = {}
        self._labels: dict[str, str] = {}

    def load(self) -> None:
        """Load validators and labels from the store."""
        self._labels = dict(self.store.get(KEY_VALIDATOR_LABELS, {}) or {})
        for record in self.store.get(KEY_VALIDATORS, []):
            validator_id = record["id"]
            validator = Validator(
                id=validator_id,
                color=self.assign_color(validator_id),
                pubkey=record.get("pubkey"),
                status=record.get("status"),
                label=self._labels.get(validator_id),
            )
            self._insert(validator)
        metrics.update_registry(len(self._validators))
        logger.info(f"Loaded {len(self._validators)} tracked validator(s)")

    def save(self) -> None:
        self.store.set(KEY_VALIDATORS, [v.to_record() for v in self._validators.values()])

    def _save_labels(self) -> None:
        self.store.set(KEY_VALIDATOR_LABELS, self._labels)

    def _insert(self, validator: Validator) -> None:
        self._validators[validator.id] = validator
        if validator.pubkey:
            self._by_pubkey[validator.pubkey.lower()] = validator.id

    def __len__(self) -> int:
        return len(self._validators)

    def __contains__(self, validator_id: str) -> bool:
        return str(validator_id) in self._validators

    def __iter__(self) -> Iterator[Validator]:
        return iter(list(self._validators.values()))

    def ids(self) -> list[str]:
        return list(self._validators)

    def get(self, validator_id: str) -> Optional[Validator]:
        return self._validators.get(str(validator_id))

    async def add(self, raw: str) -> Validator:
        """Validate, resolve and start tracking a validator.

        Raises:
            InvalidFormat: input is not an index or pubkey (no network call made)
            ResolutionFailed: the beacon node does not know the validator or is unreachable
            DuplicateValidator: the resolved index is already tracked
        """
        kind, value = parse_validator_input(raw)
        if kind == "index" and value in self._validators:
            raise DuplicateValidator(value, value)

        try:
            info = await self.client.get_validator_info(value)
        except BeaconUnreachable as e:
            raise ResolutionFailed(value, "beacon node unreachable") from e
        except BeaconError as e:
            raise ResolutionFailed(value, str(e)) from e

        if info is None:
            raise ResolutionFailed(value, "not found on the beacon chain")

        validator_id = str(info.index)
        if validator_id in self._validators:
            raise DuplicateValidator(value, validator_id)

        if kind == "pubkey":
            logger.info(f"Converting pubkey {truncate_id(value)} to index {validator_id}")

        validator = Validator(
            id=validator_id,
            color=self.assign_color(validator_id),
            pubkey=info.pubkey.lower() if info.pubkey else None,
            status=info.status or None,
            label=self._labels.get(validator_id),
        )
        self._insert(validator)
        self.save()
        metrics.update_registry(len(self._validators))
        logger.info(f"Validator {validator_id} added")
        return validator

    @staticmethod
    def split_batch(text: str) -> list[str]:
        """Split comma, semicolon or newline separated input."""
        return [item.strip() for item in BATCH_SEPARATORS_RE.split(text) if item.strip()]

    async def add_many(self, raw_items: Iterable[str]) -> ImportSummary:
        """Add several validators, collecting per-item failures."""
        summary = ImportSummary()
        for raw in raw_items:
            if not raw or not raw.strip():
                continue
            try:
                validator = await self.add(raw)
            except InvalidFormat:
                summary.invalid += 1
                summary.errors.append(f"{raw}: Invalid format")
            except DuplicateValidator as e:
                summary.duplicates += 1
                logger.debug(str(e))
            except ResolutionFailed as e:
                summary.failed += 1
                if isinstance(e.__cause__, BeaconUnreachable):
                    summary.errors.append(f"{raw}: Connection error")
                else:
                    summary.errors.append(f"{raw}: {e.reason}")
            else:
                summary.added.append(validator.id)
        logger.info(summary.describe())
        return summary

    def remove(self, validator_id: str) -> bool:
        """Stop tracking a validator. Notification history is kept."""
        validator = self._validators.pop(str(validator_id), None)
        if validator is None:
            return False
        if validator.pubkey:
            self._by_pubkey.pop(validator.pubkey.lower(), None)
        self._colors.pop(validator.id, None)
        if self._labels.pop(validator.id, None) is not None:
            self._save_labels()
        self.save()
        metrics.update_registry(len(self._validators))
        logger.info(f"Validator {validator.id} removed")
        return True

    def assign_color(self, validator_id: str) -> str:
        """Return the validator's colour, assigning one on first use."""
        if validator_id in self._colors:
            return self._colors[validator_id]
        used = set(self._colors.values())
        available = [c for c in COLOR_PALETTE if c not in used]
        if available:
            color = available[0]
        else:
            color = COLOR_PALETTE[len(self._colors) % len(COLOR_PALETTE)]
        self._colors[validator_id] = color
        return color

    def color_of(self, validator_id: str) -> str:
        return self._colors.get(str(validator_id), DEFAULT_COLOR)

    def set_label(self, validator_id: str, text: Optional[str]) -> None:
        """Set a custom label; empty or blank text clears it."""
        validator_id = str(validator_id)
        if validator_id not in self._validators:
            raise RegistryError(f"Validator {validator_id} is not tracked")
        label = text.strip() if text else ""
        if label:
            self._labels[validator_id] = label
        else:
            self._labels.pop(validator_id, None)
        self._validators[validator_id].label = label or None
        self._save_labels()

    def get_label(self, validator_id: str) -> Optional[str]:
        return self._labels.get(str(validator_id))

    def display_label(self, validator_id: str) -> str:
        """Custom label if set, otherwise the (truncated) id."""
        return self.get_label(validator_id) or truncate_id(str(validator_id))

    def display(self, validator_id: str) -> str:
        """Notification display form: index plus pubkey prefix when known."""
        validator = self.get(validator_id)
        if validator and validator.pubkey:
            return f"{validator.id} ({validator.pubkey[:10]})"
        return str(validator_id)

    def match_duty(self, duty: Duty, warn: bool = True) -> Optional[Validator]:
        """Find the tracked validator a duty belongs to.

        Matches on pubkey first, then on the stringified index. Unmatched
        duties are logged (when ``warn``) and counted, never raised.
        """
        pubkey = getattr(duty, "pubkey", None)
        if pubkey:
            validator_id = self._by_pubkey.get(pubkey.lower())
            if validator_id is not None:
                return self._validators[validator_id]

        validator = self._validators.get(str(duty.validator_index))
        if validator is None and warn:
            logger.warning(f"Could not match duty to tracked validator: {duty}")
            metrics.record_unmatched_duty()
        return validator

    async def refresh_statuses(self) -> int:
        """Refresh chain status of every validator. Returns how many changed."""
        changed = 0
        for validator in self:
            try:
                info = await self.client.get_validator_info(validator.id)
            except BeaconError as e:
                logger.warning(f"Status refresh for {validator.id} failed: {e}")
                continue
            if info is None:
                continue
            if info.status and info.status != validator.status:
                validator.status = info.status
                changed += 1
            if info.pubkey and not validator.pubkey:
                validator.pubkey = info.pubkey.lower()
                self._by_pubkey[validator.pubkey] = validator.id
        if changed:
            self.save()
        return changed

    async def resolve_pending(self) -> int:
        """Resolve pubkey entries left behind by the legacy store migration."""
        pending = self.store.get(KEY_PENDING_VALIDATORS, [])
        if not pending:
            return 0
        remaining = []
        resolved = 0
        for entry in pending:
            try:
                validator = await self.add(entry["raw"])
            except DuplicateValidator:
                continue
            except RegistryError as e:
                logger.warning(f"Pending validator not resolved yet: {e}")
                remaining.append(entry)
                continue
            if entry.get("label"):
                self.set_label(validator.id, entry["label"])
            resolved += 1
        if remaining:
            self.store.set(KEY_PENDING_VALIDATORS, remaining)
        else:
            self.store.delete(KEY_PENDING_VALIDATORS)
        return resolved
