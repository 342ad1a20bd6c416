"""
Gmail Service
Sends plain-text email as the signed-in user through the Gmail API
"""
import base64
import logging
from email.message import EmailMessage
from typing import Awaitable, Callable, Optional

import httpx

from ..config import EXTERNAL_API_TIMEOUT
from ..exceptions import NotificationDeliveryError
from ..shared.validators import is_valid_email

logger = logging.getLogger(__name__)

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"

TokenRefresher = Callable[[], Awaitable[Optional[str]]]


def build_raw_message(to: str, subject: str, body: str, cc: Optional[str] = None) -> str:
    """RFC 2822 message, base64url-encoded the way Gmail's send endpoint expects"""
    message = EmailMessage()
    message["To"] = to
    if cc:
        message["Cc"] = cc
    message["Subject"] = subject
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode().rstrip("=")


class GmailService:
    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[TokenRefresher] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self._refresh_token = refresh_token
        self._client = client

    async def send_email(self, to: str, subject: str, body: str, cc: Optional[str] = None) -> dict:
        """Send an email. Retries once with a refreshed token on 401/403."""
        if not is_valid_email(to):
            raise NotificationDeliveryError("gmail", to or "<empty>", "Invalid email address")

        payload = {"raw": build_raw_message(to, subject, body, cc)}
        response = await self._post("/messages/send", payload, to)

        if response.status_code in (401, 403) and self._refresh_token:
            logger.info("🔄 Gmail rejected token, refreshing once...")
            new_token = await self._refresh_token()
            if new_token:
                self.access_token = new_token
                response = await self._post("/messages/send", payload, to)

        if response.status_code >= 400:
            raise NotificationDeliveryError("gmail", to, _error_message(response))

        logger.info(f"📧 Email sent to {to}")
        return response.json() if response.content else {}

    async def _post(self, endpoint: str, payload: dict, recipient: str) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            if self._client is not None:
                return await self._client.post(f"{GMAIL_API}{endpoint}", json=payload, headers=headers)
            async with httpx.AsyncClient(timeout=EXTERNAL_API_TIMEOUT) as client:
                return await client.post(f"{GMAIL_API}{endpoint}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise NotificationDeliveryError("gmail", recipient, str(e)) from e


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or f"Gmail API error ({response.status_code})"
    except ValueError:
        return f"Gmail API error ({response.status_code})"
