"""Tests for application wiring, connection notices and export/import."""

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import proposer_duty, pubkey_for
from dutywatch.app import BeaconErrorNotice, TrackerApp, build_sink
from dutywatch.beacon import BeaconUnreachable
from dutywatch.cache import CacheManager
from dutywatch.config import Config
from dutywatch.duties import DutySet
from dutywatch.notify import LogSink, MultiSink, NotificationSettings, PushRelaySink, TelegramSink
from dutywatch.store import KEY_BEACON_URL, KEY_DUTIES_CACHE, KEY_PENDING_VALIDATORS, Store
from dutywatch.validators import ProposerDuty, ResolutionFailed, ValidatorRegistry
from dutywatch.validators.portability import (
    ImportFormatError,
    export_document,
    import_document,
)


class FakeMonotonic:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestBeaconErrorNotice:
    def test_shown_once_until_timeout(self):
        clock = FakeMonotonic()
        notice = BeaconErrorNotice(monotonic=clock)
        error = BeaconUnreachable("http://node:5052")

        assert notice.show(error) is True
        assert "http://node:5052" in notice.message
        assert notice.show(error) is False

        clock.now += 9
        assert notice.active
        clock.now += 1
        assert not notice.active
        assert notice.message == ""
        assert notice.show(error) is True

    def test_clear(self):
        notice = BeaconErrorNotice(monotonic=FakeMonotonic())
        notice.show(BeaconUnreachable("http://x"))
        notice.clear()
        assert not notice.active


class TestBuildSink:
    def test_log_only(self):
        assert isinstance(build_sink(Config(), NotificationSettings()), LogSink)

    def test_telegram_needs_token_and_chat(self):
        sink = build_sink(Config(telegram_token="t"), NotificationSettings())
        assert isinstance(sink, LogSink)

        sink = build_sink(Config(telegram_token="t"), NotificationSettings(telegram_chat_id="99"))
        assert isinstance(sink, MultiSink)
        telegram = [s for s in sink.sinks if isinstance(s, TelegramSink)]
        assert telegram[0].chat_id == "99"

    def test_push_relay(self):
        sink = build_sink(Config(push_url="http://relay/api/notify"), NotificationSettings())
        assert any(isinstance(s, PushRelaySink) for s in sink.sinks)


@pytest.fixture
def app(beacon, sink, store):
    config = Config(genesis_time=0, metrics_port=0)
    return TrackerApp(config, client=beacon, sink=sink, store=store)


@pytest.mark.asyncio
async def test_add_validator_merges_proposals(app, beacon):
    beacon.head_slot = 64
    beacon.add_validator(9)
    beacon.proposer_duties[2] = [proposer_duty(70, 9), proposer_duty(71, 3)]

    validator = await app.add_validator("9")

    assert validator.id == "9"
    assert [d.slot for d in app.duties.proposer] == [70]
    assert "9" in app.registry


@pytest.mark.asyncio
async def test_add_validator_by_pubkey(app, beacon):
    beacon.add_validator(12)
    validator = await app.add_validator(pubkey_for(12))
    assert validator.id == "12"
    assert validator.pubkey == pubkey_for(12)


@pytest.mark.asyncio
async def test_add_unknown_validator(app):
    with pytest.raises(ResolutionFailed, match="not found"):
        await app.add_validator("404")


@pytest.mark.asyncio
async def test_refresh_shows_notice_when_unreachable(app, beacon):
    beacon.add_validator(1)
    await app.add_validator("1")
    beacon.unreachable = True

    assert await app.refresh() is False
    assert app.notice.active

    beacon.unreachable = False
    assert await app.refresh() is True
    assert not app.notice.active


@pytest.mark.asyncio
async def test_sync_genesis_updates_clock(app, beacon):
    beacon.genesis_time = 1000
    await app.sync_genesis()
    assert app.clock.genesis_time == 1000
    assert app.scheduler.clock is app.clock
    assert app.proposals.clock is app.clock


@pytest.mark.asyncio
async def test_close_releases_resources(app, beacon, sink):
    await app.close()
    assert beacon.closed
    assert sink.closed


def test_clear_cache(app, store):
    store.set(KEY_DUTIES_CACHE, {"duties": {}, "timestamp": 0})
    app.clear_cache()
    assert not store.has(KEY_DUTIES_CACHE)
    assert len(app.duties) == 0


@pytest.mark.asyncio
async def test_pending_validators_resolved(beacon, sink, store):
    beacon.add_validator(8)
    store.set(KEY_PENDING_VALIDATORS, [{"raw": pubkey_for(8), "label": "legacy"}])
    app = TrackerApp(Config(genesis_time=0), client=beacon, sink=sink, store=store)

    assert await app.registry.resolve_pending() == 1
    assert app.registry.get_label("8") == "legacy"
    assert not store.has(KEY_PENDING_VALIDATORS)


class TestPortability:
    @pytest.mark.asyncio
    async def test_round_trip(self, make_registry, beacon, store, tmp_path):
        registry = make_registry(1, 2)
        registry.set_label("2", "backup")
        settings = NotificationSettings(attester=False, lead_minutes=4, telegram_chat_id="55")
        document = export_document(
            registry, settings, "http://node:5052",
            now=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )

        assert document["exportDate"] == "2024-01-02T03:04:05Z"
        assert document["settings"]["notifications"] == {
            "proposer": True, "attester": False, "sync": True, "missed": False, "minutesBefore": 4,
        }
        assert document["settings"]["telegram"] == {"enabled": True, "chatId": "55"}
        assert document["validators"][1] == {"index": 2, "label": "backup", "pubkey": pubkey_for(2)}

        other_store = Store(str(tmp_path / "other"))
        other = ValidatorRegistry(other_store, beacon)
        result = await import_document(document, other)

        assert result.added == 2
        assert result.settings_restored
        assert other.get_label("2") == "backup"
        restored = NotificationSettings.load(other_store)
        assert (restored.attester, restored.lead_minutes, restored.telegram_chat_id) == (False, 4, "55")
        assert other_store.get(KEY_BEACON_URL) == "http://node:5052"
        other_store.close()

    @pytest.mark.asyncio
    async def test_duplicates_and_failures(self, make_registry, beacon):
        registry = make_registry(1)
        document = {"validators": [{"index": 1}, {"index": 999}, {"label": "no index"}]}
        result = await import_document(document, registry)

        assert result.added == 0
        assert result.failed == 2
        assert not result.settings_restored
        assert result.describe() == "No new validators or settings imported"

    @pytest.mark.asyncio
    async def test_invalid_document(self, make_registry):
        with pytest.raises(ImportFormatError):
            await import_document({"settings": {}}, make_registry())


@pytest.mark.asyncio
async def test_start_refreshes_after_cache_restore(make_registry, beacon, sink, store):
    make_registry(1)
    cached = DutySet(proposer=[ProposerDuty(slot=10**9, validator_index=1)])
    CacheManager(store).save(cached)
    app = TrackerApp(
        Config(genesis_time=0, metrics_port=0, auto_refresh=False),
        client=beacon, sink=sink, store=store,
    )

    await app.start()
    try:
        assert app.duties == cached
        assert beacon.calls_to("get_proposer_duties") == []
        await asyncio.sleep(0.05)
        assert len(beacon.calls_to("get_proposer_duties")) == 2
        assert app.duties.proposer == []
    finally:
        await app.stop()
