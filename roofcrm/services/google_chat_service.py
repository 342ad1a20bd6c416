"""
Google Chat Service
Posts team notices to a Chat space through its incoming webhook
"""
import logging
from typing import Optional

import httpx

from ..config import EXTERNAL_API_TIMEOUT, GoogleChatConfig
from ..exceptions import NotificationDeliveryError

logger = logging.getLogger(__name__)


class GoogleChatService:
    channel = "google_chat"

    def __init__(self, config: GoogleChatConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def target(self) -> str:
        # Webhook URLs embed a key; log only the space part
        return self.config.webhook_url.split("?")[0]

    async def post_message(self, text: str) -> None:
        try:
            if self._client is not None:
                response = await self._client.post(self.config.webhook_url, json={"text": text})
            else:
                async with httpx.AsyncClient(timeout=EXTERNAL_API_TIMEOUT) as client:
                    response = await client.post(self.config.webhook_url, json={"text": text})
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(self.channel, self.target, str(e)) from e

        if response.status_code >= 400:
            raise NotificationDeliveryError(self.channel, self.target, f"HTTP {response.status_code}")

        logger.info(f"💬 Posted Google Chat message to {self.target}")
