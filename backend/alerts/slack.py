"""
Slack delivery for lifecycle events via the Web API (chat.postMessage).

Transfer events go to the transfers channel, production order events to the
production channel and low-stock alerts to the alerts channel. A missing bot
token or channel skips the message with a warning.
"""

import httpx
import structlog

from alerts.dispatcher import (
    LOW_STOCK,
    PRODUCTION_ORDER_CANCELLED,
    PRODUCTION_ORDER_CREATED,
    PRODUCTION_ORDER_DELIVERY,
    NotificationEvent,
    Notifier,
)
from alerts.messages import build_message
from core.config import Settings
from core.errors import NotificationError

logger = structlog.get_logger()

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"

_PRODUCTION_KINDS = {PRODUCTION_ORDER_CREATED, PRODUCTION_ORDER_DELIVERY, PRODUCTION_ORDER_CANCELLED}


class SlackNotifier(Notifier):
    def __init__(
        self,
        bot_token: str,
        transfers_channel: str = "",
        production_channel: str = "",
        alerts_channel: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bot_token = bot_token
        self.transfers_channel = transfers_channel
        self.production_channel = production_channel
        self.alerts_channel = alerts_channel or transfers_channel
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "SlackNotifier":
        return cls(
            bot_token=settings.slack_bot_token,
            transfers_channel=settings.slack_channel_transfers,
            production_channel=settings.slack_channel_production,
            alerts_channel=settings.slack_channel_alerts,
        )

    def channel_for(self, kind: str) -> str:
        if kind in _PRODUCTION_KINDS:
            return self.production_channel
        if kind == LOW_STOCK:
            return self.alerts_channel
        return self.transfers_channel

    async def send(self, event: NotificationEvent) -> None:
        channel = self.channel_for(event.kind)
        if not self.bot_token or not channel:
            logger.warning(
                "slack.skipped",
                kind=event.kind,
                reason="bot token not set" if not self.bot_token else "channel not set",
            )
            return

        text, blocks = build_message(event)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
                response = await client.post(
                    SLACK_POST_MESSAGE_URL,
                    headers={"Authorization": f"Bearer {self.bot_token}"},
                    json={"channel": channel, "text": text, "blocks": blocks},
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Slack request failed: {exc}") from exc

        # Slack reports API errors with HTTP 200 and ok=false.
        if not body.get("ok"):
            raise NotificationError(f"Slack rejected message: {body.get('error', 'unknown error')}")
        logger.info("slack.sent", kind=event.kind, channel=channel)
