"""Tracker application: wires components together and runs the periodic tasks."""

import asyncio
import logging
import time
from typing import Callable, Optional

from .beacon import BeaconClient, BeaconError, BeaconUnreachable
from .cache import CacheManager
from .chain import SlotClock
from .config import Config
from .duties import DutyFetcher
from .notify import (
    LogSink,
    MissedAttestationTracker,
    MultiSink,
    NotificationLedger,
    NotificationScheduler,
    NotificationSettings,
    NotificationSink,
    ProposalWatcher,
    PushRelaySink,
    TelegramSink,
)
from .store import Store, KEY_BEACON_URL, migrate
from .validators import Validator, ValidatorRegistry
from . import metrics

logger = logging.getLogger(__name__)

NOTICE_TIMEOUT = 10.0


class BeaconErrorNotice:
    """Reports beacon connection failures without repeating itself.

    While a notice is active further failures are suppressed; it clears by
    itself ``timeout`` seconds after it was shown.
    """

    def __init__(self, timeout: float = NOTICE_TIMEOUT, monotonic: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._monotonic = monotonic
        self._shown_at: Optional[float] = None
        self.message = ""

    @property
    def active(self) -> bool:
        if self._shown_at is None:
            return False
        if self._monotonic() - self._shown_at >= self.timeout:
            self.clear()
            return False
        return True

    def show(self, error: BeaconUnreachable) -> bool:
        """Report ``error`` unless a notice is already showing."""
        if self.active:
            return False
        self._shown_at = self._monotonic()
        self.message = f"Cannot connect to beacon node at {error.url}. Check that it is running."
        logger.error(self.message)
        return True

    def clear(self) -> None:
        self._shown_at = None
        self.message = ""


def build_sink(config: Config, settings: NotificationSettings) -> NotificationSink:
    sinks: list[NotificationSink] = [LogSink()]
    chat_id = settings.telegram_chat_id or config.telegram_chat_id
    if config.telegram_token and chat_id:
        sinks.append(TelegramSink(config.telegram_token, chat_id, timeout=config.request_timeout))
    if config.push_url:
        sinks.append(PushRelaySink(config.push_url, timeout=config.request_timeout))
    if len(sinks) == 1:
        return sinks[0]
    return MultiSink(sinks)


class TrackerApp:
    """Owns the tracker state and its three periodic tasks.

    The countdown task runs every second and only reads state (it may start
    block confirmations). The scheduler task is the only writer of the
    notification ledger. The refresh task refetches duties when auto refresh
    is enabled.
    """

    def __init__(
        self,
        config: Config,
        client: Optional[BeaconClient] = None,
        sink: Optional[NotificationSink] = None,
        store: Optional[Store] = None,
    ):
        self.config = config
        self.store = store or Store(config.data_dir)
        self.client = client or BeaconClient(config.beacon_url, timeout=config.request_timeout)
        self.clock = SlotClock(config.genesis_time, config.seconds_per_slot, config.slots_per_epoch)

        migrate(self.store)
        self.settings = NotificationSettings.load(self.store)
        self.sink = sink or build_sink(config, self.settings)

        self.registry = ValidatorRegistry(self.store, self.client)
        self.cache = CacheManager(self.store)
        self.fetcher = DutyFetcher(self.client, self.registry, self.cache, config.slots_per_epoch)
        self.ledger = NotificationLedger(self.store)
        self.missed = MissedAttestationTracker(
            self.client, self.registry, self.store, self.clock, self.sink
        )
        self.proposals = ProposalWatcher(
            self.client, self.registry, self.store, self.clock, self.sink
        )
        self.scheduler = NotificationScheduler(
            self.registry,
            self.ledger,
            self.sink,
            self.clock,
            self.store,
            get_duties=lambda: self.fetcher.duties,
            missed=self.missed,
        )
        self.notice = BeaconErrorNotice()

        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._last_slot: Optional[int] = None

        self.registry.load()
        self.ledger.load()
        self.missed.load()

    @property
    def duties(self):
        return self.fetcher.duties

    def _set_clock(self, clock: SlotClock) -> None:
        self.clock = clock
        for component in (self.scheduler, self.missed, self.proposals):
            component.clock = clock

    async def sync_genesis(self) -> None:
        """Use the beacon node's genesis time when it differs from the config."""
        try:
            genesis_time = await self.client.get_genesis()
        except BeaconError as e:
            logger.warning(f"Could not read genesis from beacon node, using {self.clock.genesis_time}: {e}")
            return
        if genesis_time != self.clock.genesis_time:
            logger.info(f"Using beacon node genesis time {genesis_time}")
            self._set_clock(SlotClock(genesis_time, self.clock.seconds_per_slot, self.clock.slots_per_epoch))

    async def start(self) -> None:
        """Start the tracker."""
        logger.info("Starting dutywatch")

        if self.config.metrics_enabled:
            metrics.start_metrics_server(self.config.metrics_port)
        from .version import get_version
        metrics.set_tracker_info(version=get_version(), beacon_url=self.client.base_url)
        self.store.set(KEY_BEACON_URL, self.client.base_url)

        resolved = await self.registry.resolve_pending()
        if resolved:
            logger.info(f"Resolved {resolved} pending validator(s)")

        await self.sync_genesis()

        cached = self.cache.load()
        if cached is not None:
            self.fetcher.install(cached)
            logger.info(f"Restored {len(cached)} cached duties")
        else:
            await self.refresh()

        self._running = True
        self._tasks = [
            asyncio.create_task(self._countdown_loop()),
            asyncio.create_task(self._scheduler_loop()),
        ]
        if cached is not None:
            # Cached duties are shown right away and replaced once fetched.
            self._tasks.append(asyncio.create_task(self.refresh()))
        if self.config.auto_refresh:
            self._tasks.append(asyncio.create_task(self._refresh_loop()))

        logger.info(f"Tracking {len(self.registry)} validator(s) at slot {self.clock.current_slot()}")

    async def stop(self) -> None:
        """Stop the periodic tasks and release resources."""
        logger.info("Stopping dutywatch")
        self._running = False

        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        await self.proposals.close()
        await self.close()

    async def close(self) -> None:
        await self.sink.close()
        await self.client.close()
        self.store.close()

    async def refresh(self) -> bool:
        """Refetch all duties. Returns True if a new DutySet was installed."""
        try:
            result = await self.fetcher.gather()
        except BeaconUnreachable as e:
            self.notice.show(e)
            return False
        except BeaconError as e:
            logger.error(f"Failed to fetch duties: {e}")
            return False
        if result is not None:
            self.notice.clear()
        return result is not None

    async def add_validator(self, raw: str) -> Validator:
        """Add a validator and merge its upcoming proposals."""
        validator = await self.registry.add(raw)
        try:
            await self.fetcher.fetch_for_validator(validator)
        except BeaconError as e:
            logger.warning(f"Could not fetch proposer duties for validator {validator.id}: {e}")
        return validator

    def clear_cache(self) -> None:
        self.fetcher.install(self.cache.clear())

    async def _countdown_loop(self) -> None:
        while self._running:
            try:
                now = time.time()
                slot = self.clock.current_slot(now)
                if slot != self._last_slot:
                    self._last_slot = slot
                    metrics.update_chain_time(slot, self.clock.epoch_of(slot))
                    logger.debug(f"Slot {slot}")
                self.proposals.on_countdown(self.fetcher.duties, now)
                await asyncio.sleep(self.config.countdown_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Countdown error: {e}", exc_info=True)
                await asyncio.sleep(1)

    async def _scheduler_loop(self) -> None:
        while self._running:
            try:
                await self.scheduler.tick()
                await asyncio.sleep(self.config.scheduler_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Scheduler error: {e}", exc_info=True)
                await asyncio.sleep(1)

    async def _refresh_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.config.refresh_interval)
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Auto refresh error: {e}", exc_info=True)
                await asyncio.sleep(1)


async def run_app(config: Config) -> None:
    """Run the tracker until cancelled."""
    app = TrackerApp(config)

    try:
        await app.start()
        while True:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        pass
    finally:
        await app.stop()
