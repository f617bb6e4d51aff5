"""Confirmation of blocks proposed by tracked validators."""

import asyncio
import logging
import time
from typing import Optional

from .settings import NotificationSettings
from .sinks import NotificationSink, deliver
from .types import Notification
from ..beacon import BeaconClient, BeaconError, BlockDetails, RetryPolicy
from ..chain import SlotClock
from ..duties import DutySet
from ..store import Store, KEY_BLOCK_DETAILS
from ..validators.registry import ValidatorRegistry
from ..validators.types import DutyKind, Validator

logger = logging.getLogger(__name__)

CONFIRM_DELAY = 5.0


def block_record(block: BlockDetails, validator_index: int, now: Optional[float] = None) -> dict:
    """Stored summary of a confirmed block."""
    return {
        "slot": block.slot,
        "proposer_index": block.proposer_index,
        "burned_fees": block.burned_fees_eth,
        "fee_recipient": block.fee_recipient,
        "graffiti": block.graffiti,
        "tx_count": block.tx_count,
        "block_hash": block.block_hash,
        "block_number": block.block_number,
        "withdrawals": block.withdrawals_for(validator_index),
        "timestamp": int((time.time() if now is None else now) * 1000),
    }


class ProposalWatcher:
    """Watches for the slot of a tracked proposal and confirms the block.

    When a proposer duty's slot becomes current the block is fetched after a
    short delay (with retries), stored once per slot, and announced with a
    ``block_confirmed`` notification.
    """

    def __init__(
        self,
        client: BeaconClient,
        registry: ValidatorRegistry,
        store: Store,
        clock: SlotClock,
        sink: NotificationSink,
        retry: Optional[RetryPolicy] = None,
        confirm_delay: float = CONFIRM_DELAY,
    ):
        self.client = client
        self.registry = registry
        self.store = store
        self.clock = clock
        self.sink = sink
        self.retry = retry or RetryPolicy()
        self.confirm_delay = confirm_delay
        self.celebrated: set[int] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def block_details(self) -> dict:
        return self.store.get(KEY_BLOCK_DETAILS, {}) or {}

    def on_countdown(self, duties: DutySet, now: Optional[float] = None) -> list[int]:
        """Start confirmation for proposals whose slot is the current slot."""
        current_slot = self.clock.current_slot(now)
        started = []
        for duty in duties.proposer:
            if duty.slot != current_slot or duty.slot in self.celebrated:
                continue
            self.celebrated.add(duty.slot)
            validator = self.registry.match_duty(duty)
            if validator is None:
                continue
            logger.info(f"Validator {validator.id} is proposing slot {duty.slot}")
            task = asyncio.create_task(self.confirm(duty.slot, validator))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(duty.slot)
        return started

    async def confirm(self, slot: int, validator: Validator) -> Optional[dict]:
        """Fetch, store and announce the block at ``slot``."""
        if str(slot) in self.block_details:
            return None

        await asyncio.sleep(self.confirm_delay)
        try:
            block = await self.retry.run(
                lambda: self.client.get_block_details(slot),
                f"Block lookup for slot {slot}",
            )
        except BeaconError as e:
            logger.warning(f"Could not confirm block at slot {slot}: {e}")
            return None

        if block.proposer_index != validator.index:
            logger.warning(
                f"Block at slot {slot} was proposed by {block.proposer_index}, "
                f"not validator {validator.id}"
            )
            return None

        record = block_record(block, validator.index)
        details = dict(self.block_details)
        details[str(slot)] = record
        self.store.set(KEY_BLOCK_DETAILS, details)
        logger.info(
            f"Block {slot} confirmed for validator {validator.id}: "
            f"{record['tx_count']} txs, {record['burned_fees']:.4f} ETH burned"
        )

        settings = NotificationSettings.load(self.store)
        if settings.enabled(DutyKind.BLOCK_CONFIRMED):
            await deliver(self.sink, Notification(
                kind=DutyKind.BLOCK_CONFIRMED,
                validator_id=validator.id,
                validator_display=self.registry.display(validator.id),
                slot=slot,
                time_until="confirmed",
                urgency="success",
                details=record,
            ))
        return record

    def clear_block_details(self, slot: Optional[int] = None) -> None:
        if slot is None:
            self.store.delete(KEY_BLOCK_DETAILS)
            return
        details = dict(self.block_details)
        if details.pop(str(slot), None) is not None:
            self.store.set(KEY_BLOCK_DETAILS, details)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            try:
                await task
            except asyncio.CancelledError:
                pass
