"""
Real transactional email HTTP client.

Used when EMAIL_API_URL is configured.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import httpx

from osot.integrations.contracts.email import EmailClient, EmailMessage
from osot.integrations.policy.response_wrappers import IntegrationResponseError, normalize_email_response
from osot.utils.masking import mask_email

logger = logging.getLogger(__name__)


class RealEmailClient(EmailClient):
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("EMAIL_API_URL", "")).rstrip("/")
        self.api_key = api_key or os.getenv("EMAIL_API_KEY", "")
        self.sender = sender or os.getenv("EMAIL_FROM", "no-reply@osot.on.ca")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, message: EmailMessage) -> bool:
        if not self.base_url:
            raise ValueError("EMAIL_API_URL is not configured.")

        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
            "tags": [message.template],
        }

        recipients = ", ".join(mask_email(r) for r in message.to)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/send", json=payload, headers=headers)
                response.raise_for_status()
                data = response.json() if response.content else {}
            result = normalize_email_response(data)
        except (httpx.HTTPError, IntegrationResponseError) as e:
            logger.error("Email '%s' to %s failed: %s", message.template, recipients, e)
            return False

        logger.info("Email '%s' sent to %s (id=%s)", message.template, recipients, result.message_id or "-")
        return result.accepted
