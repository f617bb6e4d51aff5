"""Notification delivery channels."""

import asyncio
import logging
from typing import Optional

import aiohttp

from .exceptions import NotificationDeliveryFailed
from .messages import push_payload, telegram_text
from .types import Notification
from .. import metrics

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class NotificationSink:
    """Base class for delivery channels."""

    name = "sink"

    async def notify(self, notification: Notification) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class LogSink(NotificationSink):
    """Writes notifications to the log."""

    name = "log"

    async def notify(self, notification: Notification) -> None:
        logger.info(
            f"[{notification.urgency}] {notification.title}: validator "
            f"{notification.validator_display} slot {notification.slot} ({notification.time_until})"
        )


class _HttpSink(NotificationSink):
    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _post(self, url: str, body: dict) -> dict:
        session = await self._ensure_session()
        try:
            async with session.post(
                url, json=body, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise NotificationDeliveryFailed(self.name, f"HTTP {response.status}: {text}")
                try:
                    return await response.json(content_type=None)
                except ValueError:
                    return {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationDeliveryFailed(self.name, str(e) or type(e).__name__) from e

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class TelegramSink(_HttpSink):
    """Sends Markdown messages through the Telegram Bot API."""

    name = "telegram"

    def __init__(self, token: str, chat_id: str, api_url: str = TELEGRAM_API_URL, timeout: float = 10.0):
        super().__init__(timeout)
        self.token = token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")

    async def notify(self, notification: Notification) -> None:
        body = {
            "chat_id": self.chat_id,
            "text": telegram_text(notification),
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }
        result = await self._post(f"{self.api_url}/bot{self.token}/sendMessage", body)
        if isinstance(result, dict) and result.get("ok") is False:
            raise NotificationDeliveryFailed(self.name, result.get("description", "rejected"))


class PushRelaySink(_HttpSink):
    """Posts notifications to a web push relay."""

    name = "push"

    def __init__(self, url: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.url = url

    async def notify(self, notification: Notification) -> None:
        await self._post(self.url, push_payload(notification))


class MultiSink(NotificationSink):
    """Fans out to several sinks.

    One sink failing does not stop the others. Raises only when every sink
    failed.
    """

    name = "multi"

    def __init__(self, sinks: list[NotificationSink]):
        self.sinks = list(sinks)

    async def notify(self, notification: Notification) -> None:
        if not self.sinks:
            return
        results = await asyncio.gather(
            *(sink.notify(notification) for sink in self.sinks),
            return_exceptions=True,
        )
        failures = []
        for sink, result in zip(self.sinks, results):
            if isinstance(result, Exception):
                logger.warning(f"{sink.name} notification failed: {result}")
                failures.append(f"{sink.name}: {result}")
        if len(failures) == len(self.sinks):
            raise NotificationDeliveryFailed(self.name, "; ".join(failures))

    async def close(self) -> None:
        for sink in self.sinks:
            await sink.close()


async def deliver(sink: NotificationSink, notification: Notification) -> bool:
    """Send through ``sink``, logging and counting failures instead of raising."""
    kind = getattr(notification.kind, "value", notification.kind)
    try:
        await sink.notify(notification)
    except NotificationDeliveryFailed as e:
        logger.warning(f"Notification for validator {notification.validator_id} slot {notification.slot} not delivered: {e}")
        metrics.record_notification_failure(kind)
        return False
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Error sending {kind} notification: {e}", exc_info=True)
        metrics.record_notification_failure(kind)
        return False
    metrics.record_notification(kind, notification.urgency)
    return True
