"""Fetching duty snapshots from the beacon node."""

import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from .duty_set import DutySet
from ..beacon import BeaconClient, BeaconError
from ..validators.registry import ValidatorRegistry
from ..validators.types import DutyKind, ProposerDuty, Validator
from .. import metrics

if TYPE_CHECKING:
    from ..cache import CacheManager

logger = logging.getLogger(__name__)


class DutyFetcher:
    """Builds DutySets from the beacon node and installs the newest one.

    Fetches are never cancelled. Each one takes a generation number when it
    starts; a result whose generation is no longer the latest is dropped, so
    a slow fetch cannot overwrite a newer one.
    """

    def __init__(
        self,
        client: BeaconClient,
        registry: ValidatorRegistry,
        cache: "CacheManager",
        slots_per_epoch: int = 32,
    ):
        self.client = client
        self.registry = registry
        self.cache = cache
        self.slots_per_epoch = slots_per_epoch
        self.duties = DutySet()
        self._generation = 0
        self.last_slot: Optional[int] = None

    @property
    def generation(self) -> int:
        return self._generation

    def install(self, duties: DutySet) -> None:
        """Replace the current duties (e.g. from the cache)."""
        self.duties = duties
        metrics.update_duties(len(duties.proposer), len(duties.attester), len(duties.sync))

    async def gather(self, now: Optional[float] = None) -> Optional[DutySet]:
        """Fetch all duties for the current and next epoch.

        Returns the installed DutySet, or None when there is nothing to fetch
        or the result was superseded. Beacon errors propagate.
        """
        if not len(self.registry):
            logger.warning("No validators tracked, skipping duty fetch")
            return None

        self._generation += 1
        generation = self._generation
        ids = self.registry.ids()

        try:
            current_slot = await self.client.get_current_slot()
            epoch = current_slot // self.slots_per_epoch
            proposer_now, proposer_next, attester_now, attester_next, committee = await asyncio.gather(
                self.client.get_proposer_duties(epoch),
                self.client.get_proposer_duties(epoch + 1),
                self.client.get_attester_duties(epoch, ids),
                self.client.get_attester_duties(epoch + 1, ids),
                self.client.get_sync_committee(epoch),
            )
        except BeaconError:
            metrics.record_duty_fetch("error")
            raise

        if generation != self._generation:
            logger.info(f"Discarding superseded duty fetch (generation {generation})")
            metrics.record_duty_fetch("superseded")
            return None

        fresh = DutySet()
        fresh.ingest(DutyKind.PROPOSER, proposer_now + proposer_next, self.registry)
        fresh.ingest(DutyKind.ATTESTER, attester_now + attester_next, self.registry)
        fresh.ingest_sync(committee, epoch, self.registry)

        self.last_slot = current_slot
        self.install(fresh)
        self.cache.save(fresh, now)
        metrics.record_duty_fetch("ok")
        counts = fresh.counts()
        logger.info(
            f"Fetched duties at slot {current_slot} (epoch {epoch}): "
            f"{counts['proposer']} proposer, {counts['attester']} attester, {counts['sync']} sync"
        )
        return fresh

    async def fetch_for_validator(self, validator: Validator, now: Optional[float] = None) -> int:
        """Merge upcoming proposer duties of a newly added validator.

        Returns the number of proposals added.
        """
        current_slot = await self.client.get_current_slot()
        epoch = current_slot // self.slots_per_epoch
        proposer_now, proposer_next = await asyncio.gather(
            self.client.get_proposer_duties(epoch),
            self.client.get_proposer_duties(epoch + 1),
        )
        mine = [
            ProposerDuty.from_api(raw)
            for raw in proposer_now + proposer_next
            if str(raw.get("validator_index")) == validator.id
        ]
        added = self.duties.merge_proposer(mine)
        if added:
            self.install(self.duties)
            self.cache.save(self.duties, now)
            logger.info(f"Found {added} upcoming proposal(s) for validator {validator.id}")
        return added
