"""
Email transports — shared base for every way we can send a message.

Provides:
- TransportError: failure raised by a transport's _do_send
- TransportMetrics: per-transport send/fail/latency tracking
- EmailTransport: abstract base; send() never raises, it reports status
"""
from __future__ import annotations

import abc
import time
import uuid
from collections import deque
from typing import Any, Optional

import structlog

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class TransportError(Exception):
    """Raised by a transport when the provider rejects or cannot take a message."""

    def __init__(self, message: str, transport: str = "", status_code: int = 0):
        self.transport = transport
        self.status_code = status_code
        super().__init__(message)


# ══════════════════════════════════════════════════════════════
#  METRICS
# ══════════════════════════════════════════════════════════════

class TransportMetrics:
    """Tracks per-transport send, failure, and latency metrics."""

    def __init__(self, transport: str):
        self.transport = transport
        self.messages_sent: int = 0
        self.messages_failed: int = 0
        self._latencies: deque[float] = deque(maxlen=500)
        self._errors: deque[str] = deque(maxlen=10)

    def record_send(self, latency_ms: float = 0.0):
        self.messages_sent += 1
        if latency_ms > 0:
            self._latencies.append(latency_ms)

    def record_failure(self, error: str = ""):
        self.messages_failed += 1
        if error:
            self._errors.append(error)

    @property
    def avg_latency_ms(self) -> float:
        return sum(self._latencies) / len(self._latencies) if self._latencies else 0.0

    @property
    def failure_rate(self) -> float:
        total = self.messages_sent + self.messages_failed
        return self.messages_failed / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "transport": self.transport,
            "sent": self.messages_sent,
            "failed": self.messages_failed,
            "avg_latency_ms": round(self.avg_latency_ms, 1),
            "failure_rate": round(self.failure_rate, 4),
            "recent_errors": list(self._errors),
        }


# ══════════════════════════════════════════════════════════════
#  EMAIL TRANSPORT — Abstract Base
# ══════════════════════════════════════════════════════════════

class EmailTransport(abc.ABC):
    """
    Base class for all email transports.

    Subclasses implement _do_send, which raises on failure. The base class
    wraps every send with timing, metrics and error capture, so callers
    only ever look at the returned status.
    """

    name: str = "email"

    def __init__(self, from_email: str = "", from_name: str = ""):
        self.from_email = from_email
        self.from_name = from_name
        self.metrics = TransportMetrics(self.name)

    @abc.abstractmethod
    async def _do_send(
        self, to: str, subject: str, html: str, to_name: str = ""
    ) -> Optional[str]:
        """Send one message. Returns the provider message id, if any."""
        ...

    async def send(
        self, to: str, subject: str, html: str, to_name: str = ""
    ) -> dict[str, Any]:
        start = time.monotonic()
        try:
            message_id = await self._do_send(to, subject, html, to_name)
        except Exception as e:
            error = str(e) or type(e).__name__
            self.metrics.record_failure(error)
            logger.error("email_send_failed", transport=self.name, to=to, error=error)
            return {"status": "failed", "transport": self.name, "error": error}

        latency = (time.monotonic() - start) * 1000
        self.metrics.record_send(latency)
        message_id = message_id or f"<{uuid.uuid4().hex}@{self.name}>"
        logger.info("email_sent", transport=self.name, to=to, subject=subject,
                    message_id=message_id)
        return {
            "status": "sent",
            "transport": self.name,
            "message_id": message_id,
            "latency_ms": round(latency, 1),
        }

    def health(self) -> dict[str, Any]:
        return self.metrics.to_dict()

    async def close(self) -> None:
        pass
