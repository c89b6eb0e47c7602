"""Email sending helpers."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class EmailProvider:
    def __init__(self) -> None:
        self.provider = os.environ.get("ESP_PROVIDER", "log")
        self.resend_api_key = os.environ.get("RESEND_API_KEY")
        self.sender = os.environ.get("ALERT_SENDER", "Material Prices <alerts@materialprices.local>")

    async def send(self, message: EmailMessage) -> None:
        if self.provider == "resend" and self.resend_api_key:
            await self._send_resend(message)
        else:
            logger.info("Email (log) → %s: %s", message.to, message.subject)

    async def _send_resend(self, message: EmailMessage) -> None:
        url = "https://api.resend.com/emails"
        payload = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self.resend_api_key}"}
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
