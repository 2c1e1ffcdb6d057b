"""
Transactional email APIs (SendGrid and MailerSend over HTTPS).

Both accept a JSON message with a bearer key and answer 202 on success;
anything >= 400 is a TransportError carrying the provider's response body.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from channels.base import EmailTransport, TransportError

logger = structlog.get_logger()


class HttpEmailTransport(EmailTransport):
    """Shared httpx plumbing for JSON email APIs."""

    URL: str = ""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str = "",
        timeout_s: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(from_email=from_email, from_name=from_name)
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_s, connect=10.0),
            )
        return self._client

    def _payload(self, to: str, subject: str, html: str, to_name: str) -> dict[str, Any]:
        raise NotImplementedError

    def _message_id(self, response: httpx.Response) -> Optional[str]:
        return None

    async def _do_send(self, to: str, subject: str, html: str, to_name: str = "") -> Optional[str]:
        client = await self._get_client()
        resp = await client.post(
            self.URL,
            json=self._payload(to, subject, html, to_name),
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        if resp.status_code >= 400:
            logger.error(
                "email_api_error",
                transport=self.name,
                status=resp.status_code,
                body=resp.text[:500],
            )
            raise TransportError(
                f"{self.name} rejected message: HTTP {resp.status_code}",
                transport=self.name,
                status_code=resp.status_code,
            )
        return self._message_id(resp)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


class SendGridTransport(HttpEmailTransport):
    """SendGrid v3 Mail Send API."""

    name = "sendgrid"
    URL = "https://api.sendgrid.com/v3/mail/send"

    def _payload(self, to: str, subject: str, html: str, to_name: str) -> dict[str, Any]:
        recipient = {"email": to}
        if to_name:
            recipient["name"] = to_name
        return {
            "personalizations": [{"to": [recipient]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }

    def _message_id(self, response: httpx.Response) -> Optional[str]:
        return response.headers.get("X-Message-Id")


class MailerSendTransport(HttpEmailTransport):
    """MailerSend v1 email API. Replies go back to the sender address."""

    name = "mailersend"
    URL = "https://api.mailersend.com/v1/email"

    def _payload(self, to: str, subject: str, html: str, to_name: str) -> dict[str, Any]:
        sender = {"email": self.from_email, "name": self.from_name}
        recipient = {"email": to}
        if to_name:
            recipient["name"] = to_name
        return {
            "from": sender,
            "to": [recipient],
            "reply_to": sender,
            "subject": subject,
            "html": html,
        }

    def _message_id(self, response: httpx.Response) -> Optional[str]:
        return response.headers.get("X-Message-Id")
