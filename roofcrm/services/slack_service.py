"""
Slack Service
Posts team notices with the bot token through the Slack Web API
"""
import logging
from typing import Optional

import httpx

from ..config import EXTERNAL_API_TIMEOUT, SlackConfig
from ..exceptions import NotificationDeliveryError

logger = logging.getLogger(__name__)

SLACK_API = "https://slack.com/api"


class SlackService:
    channel = "slack"

    def __init__(self, config: SlackConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def target(self) -> str:
        return self.config.notifications_channel

    async def post_message(self, text: str, channel: Optional[str] = None) -> Optional[str]:
        """Post to a channel (the notifications channel by default). Returns the message timestamp."""
        channel = channel or self.config.notifications_channel
        headers = {"Authorization": f"Bearer {self.config.bot_token}"}
        payload = {"channel": channel, "text": text}

        try:
            if self._client is not None:
                response = await self._client.post(f"{SLACK_API}/chat.postMessage", json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=EXTERNAL_API_TIMEOUT) as client:
                    response = await client.post(f"{SLACK_API}/chat.postMessage", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(self.channel, channel, str(e)) from e

        # Slack answers 200 with ok=false on API errors
        data = {}
        if response.status_code == 200:
            try:
                data = response.json()
            except ValueError as e:
                raise NotificationDeliveryError(self.channel, channel, "Slack returned a non-JSON response") from e
        if not isinstance(data, dict) or not data.get("ok"):
            error = (data.get("error") if isinstance(data, dict) else None) or f"HTTP {response.status_code}"
            raise NotificationDeliveryError(self.channel, channel, error)

        logger.info(f"💬 Posted Slack message to {channel}")
        return data.get("ts")
