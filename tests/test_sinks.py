"""Tests for notification delivery channels."""

from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

from conftest import RecordingSink
from dutywatch.notify import (
    LogSink,
    MultiSink,
    Notification,
    NotificationDeliveryFailed,
    PushRelaySink,
    TelegramSink,
    deliver,
)
from dutywatch.validators import DutyKind


def make_notification(**kwargs):
    defaults = dict(
        kind=DutyKind.PROPOSER,
        validator_id="7",
        validator_display="7",
        slot=100,
        time_until="4m 0s",
        urgency="normal",
        minutes_until=4,
    )
    defaults.update(kwargs)
    return Notification(**defaults)


@asynccontextmanager
async def serve(routes):
    app = web.Application()
    app.add_routes(routes)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_telegram_sends_markdown_message():
    received = []

    async def send_message(request):
        received.append((request.match_info["token"], await request.json()))
        return web.json_response({"ok": True, "result": {}})

    async with serve([web.post("/bot{token}/sendMessage", send_message)]) as server:
        sink = TelegramSink("123:abc", "42", api_url=str(server.make_url("/")))
        await sink.notify(make_notification())
        await sink.close()

    token, body = received[0]
    assert token == "123:abc"
    assert body["chat_id"] == "42"
    assert body["parse_mode"] == "Markdown"
    assert body["disable_web_page_preview"] is True
    assert "BLOCK PROPOSAL" in body["text"]


@pytest.mark.asyncio
async def test_telegram_rejection_raises():
    async def send_message(request):
        return web.json_response({"ok": False, "description": "chat not found"})

    async with serve([web.post("/bot{token}/sendMessage", send_message)]) as server:
        sink = TelegramSink("t", "1", api_url=str(server.make_url("/")))
        with pytest.raises(NotificationDeliveryFailed, match="chat not found"):
            await sink.notify(make_notification())
        await sink.close()


@pytest.mark.asyncio
async def test_push_relay_posts_payload():
    received = []

    async def notify(request):
        received.append(await request.json())
        return web.json_response({"sent": 1})

    async with serve([web.post("/api/notify", notify)]) as server:
        sink = PushRelaySink(str(server.make_url("/api/notify")))
        await sink.notify(make_notification(urgency="urgent"))
        await sink.close()

    assert received == [{
        "type": "Proposer",
        "validator": "7",
        "validatorDisplay": "7",
        "duty": {"slot": 100, "timeUntil": "4m 0s"},
        "urgency": "urgent",
    }]


@pytest.mark.asyncio
async def test_http_error_raises():
    async def notify(request):
        return web.Response(status=500, text="relay down")

    async with serve([web.post("/api/notify", notify)]) as server:
        sink = PushRelaySink(str(server.make_url("/api/notify")))
        with pytest.raises(NotificationDeliveryFailed, match="HTTP 500"):
            await sink.notify(make_notification())
        await sink.close()


@pytest.mark.asyncio
async def test_multi_sink_isolates_failures():
    good, bad = RecordingSink(), RecordingSink()
    bad.fail = True
    multi = MultiSink([bad, good, LogSink()])

    await multi.notify(make_notification())

    assert len(good.notifications) == 1
    assert len(bad.notifications) == 1


@pytest.mark.asyncio
async def test_multi_sink_raises_when_all_fail():
    first, second = RecordingSink(), RecordingSink()
    first.fail = second.fail = True
    with pytest.raises(NotificationDeliveryFailed):
        await MultiSink([first, second]).notify(make_notification())


@pytest.mark.asyncio
async def test_multi_sink_close_closes_all():
    first, second = RecordingSink(), RecordingSink()
    await MultiSink([first, second]).close()
    assert first.closed and second.closed


@pytest.mark.asyncio
async def test_deliver_reports_outcome():
    sink = RecordingSink()
    assert await deliver(sink, make_notification()) is True
    sink.fail = True
    assert await deliver(sink, make_notification()) is False


@pytest.mark.asyncio
async def test_deliver_contains_unexpected_errors():
    class Broken(RecordingSink):
        async def notify(self, notification):
            raise RuntimeError("boom")

    assert await deliver(Broken(), make_notification()) is False
