"""
Delivery Pipeline — get a finished call's transcript into the user's inbox.

Transports are tried in their configured order (primary, then backup).
The first one that reports "sent" ends the pipeline. If none does, the
user gets the short "transcript processing issue" notice instead, over
whichever transport will take it. Nothing here raises to the caller.
"""
from __future__ import annotations

from typing import Optional

import structlog

from channels.base import EmailTransport
from core.email_templates import (
    FAILURE_SUBJECT,
    render_failure_email,
    render_transcript_email,
    transcript_subject,
)
from core.errors import DeliveryError
from models.schemas import CallDetail, DeliveryAttempt, DeliveryOutcome, DeliveryResult

logger = structlog.get_logger()


class DeliveryPipeline:

    def __init__(self, transports: list[EmailTransport], from_name: str = "Your Company"):
        self.transports = list(transports)
        self.from_name = from_name

    async def _send_in_order(
        self, to: str, to_name: str, subject: str, html: str
    ) -> tuple[Optional[str], list[DeliveryAttempt]]:
        attempts: list[DeliveryAttempt] = []
        for transport in self.transports:
            result = await transport.send(to, subject, html, to_name=to_name)
            attempts.append(DeliveryAttempt(
                transport=transport.name,
                status=result.get("status", "failed"),
                error=result.get("error", ""),
            ))
            if result.get("status") == "sent":
                return transport.name, attempts
            logger.warning("email_transport_fallback", transport=transport.name,
                           to=to, error=result.get("error", ""))
        return None, attempts

    async def deliver_transcript(
        self, email: str, name: str, detail: CallDetail, call_id: str = ""
    ) -> DeliveryResult:
        call_id = call_id or detail.call_id
        html = render_transcript_email(
            name=name,
            transcript=detail.formatted_transcript(),
            call_id=call_id,
            detail=detail,
            from_name=self.from_name,
        )
        used, attempts = await self._send_in_order(email, name, transcript_subject(), html)
        if used:
            logger.info("transcript_delivered", call_id=call_id, to=email, transport=used,
                        attempts=len(attempts))
            return DeliveryResult(status=DeliveryOutcome.SENT, transport=used, attempts=attempts)

        err = DeliveryError(
            f"All email transports failed for call {call_id}",
            attempts=[a.model_dump() for a in attempts],
        )
        logger.error("transcript_delivery_failed", call_id=call_id, to=email,
                     error=str(err), attempts=err.attempts)

        notice = await self.send_failure_notice(email, name, call_id)
        notice.attempts = attempts + notice.attempts
        return notice

    async def send_failure_notice(self, email: str, name: str, call_id: str) -> DeliveryResult:
        """The degraded path. Total failure is logged, never raised."""
        html = render_failure_email(name=name, call_id=call_id, from_name=self.from_name)
        try:
            used, attempts = await self._send_in_order(email, name, FAILURE_SUBJECT, html)
        except Exception as e:
            logger.error("failure_notice_error", call_id=call_id, to=email, error=str(e))
            return DeliveryResult(status=DeliveryOutcome.FAILED)

        if used:
            logger.info("failure_notice_sent", call_id=call_id, to=email, transport=used)
            return DeliveryResult(status=DeliveryOutcome.DEGRADED, transport=used, attempts=attempts)

        logger.error("failure_notice_undeliverable", call_id=call_id, to=email,
                     transports=[t.name for t in self.transports])
        return DeliveryResult(status=DeliveryOutcome.FAILED, attempts=attempts)

    def health(self) -> list[dict]:
        return [t.health() for t in self.transports]

    async def close(self) -> None:
        for t in self.transports:
            await t.close()
