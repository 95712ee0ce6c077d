"""
Mock email client for local development and tests.

Every message is kept in memory and persisted as a JSON file under
`<output_root>/<template>/` so flows can be inspected without a mail server.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from osot.integrations.contracts.email import EmailClient, EmailMessage
from osot.utils.masking import mask_email

logger = logging.getLogger(__name__)


class MockEmailClient(EmailClient):
    def __init__(self, output_root: Optional[Path] = None, fail: bool = False) -> None:
        root = output_root or os.getenv("MOCK_EMAIL_OUTPUT_DIR", "")
        self.output_root = Path(root) if root else None
        self.fail = fail
        self.sent: List[EmailMessage] = []

    async def send(self, message: EmailMessage) -> bool:
        if self.fail:
            logger.warning("Mock email '%s' configured to fail", message.template)
            return False

        self.sent.append(message)
        if self.output_root is not None:
            folder = self.output_root / message.template
            folder.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
            path = folder / f"{stamp}_{uuid4().hex[:6]}.json"
            path.write_text(json.dumps(asdict(message), indent=2, default=str), encoding="utf-8")

        logger.info("Mock email '%s' to %s", message.template, ", ".join(mask_email(r) for r in message.to))
        return True

    def last(self, template: Optional[str] = None) -> Optional[EmailMessage]:
        for message in reversed(self.sent):
            if template is None or message.template == template:
                return message
        return None
