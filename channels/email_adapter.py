"""
Gmail SMTP transport. App-password login over STARTTLS via aiosmtplib.

Builds a multipart/alternative message with a plain-text part derived
from the HTML so clients that refuse HTML still show the transcript.
"""
from __future__ import annotations

import re
import uuid
from email.message import EmailMessage
from email.utils import formataddr
from html import unescape
from typing import Optional

import aiosmtplib
import structlog

from channels.base import EmailTransport, TransportError

logger = structlog.get_logger()


class GmailTransport(EmailTransport):

    name = "gmail"

    def __init__(
        self,
        user: str,
        password: str,
        from_name: str = "",
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        timeout_s: float = 30.0,
    ):
        super().__init__(from_email=user, from_name=from_name)
        self.user = user
        self.password = password
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.timeout_s = timeout_s

    def build_message(self, to: str, subject: str, html: str, to_name: str = "") -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self.from_name, self.user))
        msg["To"] = formataddr((to_name, to)) if to_name else to
        msg["Subject"] = subject
        msg["Message-ID"] = f"<{uuid.uuid4().hex}@{self.smtp_host}>"
        msg.set_content(self._html_to_plain(html))
        msg.add_alternative(html, subtype="html")
        return msg

    async def _do_send(self, to: str, subject: str, html: str, to_name: str = "") -> Optional[str]:
        msg = self.build_message(to, subject, html, to_name)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.smtp_host,
                port=self.smtp_port,
                start_tls=True,
                username=self.user,
                password=self.password,
                timeout=self.timeout_s,
            )
        except aiosmtplib.SMTPException as e:
            raise TransportError(f"SMTP send failed: {e}", transport=self.name) from e
        return msg["Message-ID"]

    # ── HTML to plain text ────────────────────────────────────

    def _html_to_plain(self, html: str) -> str:
        """Rough plain-text rendering for the text/plain part."""
        text = re.sub(r"<(style|script)[^>]*>.*?</\1>", "", html, flags=re.DOTALL | re.IGNORECASE)
        text = re.sub(r"<br\s*/?>|</(?:p|div|h[1-6]|li|tr|pre)>", "\n", text, flags=re.IGNORECASE)
        text = unescape(re.sub(r"<[^>]+>", "", text))
        lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.splitlines()]
        return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()
