"""
Console transport: logs the message instead of sending it.

For local development without mail credentials; always succeeds.
"""
from __future__ import annotations

from typing import Optional

import structlog

from channels.base import EmailTransport

logger = structlog.get_logger()


class ConsoleTransport(EmailTransport):

    name = "console"

    def __init__(self, from_name: str = ""):
        super().__init__(from_email="console@localhost", from_name=from_name)
        self.outbox: list[dict[str, str]] = []

    async def _do_send(self, to: str, subject: str, html: str, to_name: str = "") -> Optional[str]:
        self.outbox.append({"to": to, "subject": subject, "html": html, "to_name": to_name})
        logger.info("console_email", to=to, to_name=to_name, subject=subject, html_chars=len(html))
        return None
