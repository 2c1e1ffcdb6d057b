"""
Core data models for TranscriptRelay.
These are the universal types shared across all modules.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class CallState(str, Enum):
    PENDING = "pending"            # registered, waiting for the call to end
    PROCESSING = "processing"      # claimed by a call_ended webhook
    DONE = "done"                  # tombstone only, never a live record


class WebhookEvent(str, Enum):
    CALL_STARTED = "call_started"
    CALL_ENDED = "call_ended"
    CALL_ANALYZED = "call_analyzed"


class RetrievalStatus(str, Enum):
    SCHEDULED = "scheduled"
    POLLING = "polling"
    DELIVERED = "delivered"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryOutcome(str, Enum):
    SENT = "sent"
    DEGRADED = "degraded"
    FAILED = "failed"


# ──────────────────────────────────────────────────────────────
#  Call Registry
# ──────────────────────────────────────────────────────────────

class CallRecord(BaseModel):
    """Who to email once a call ends. Replaced, never edited in place."""
    model_config = ConfigDict(frozen=True)

    call_id: str
    name: str = "User"
    email: str
    phone: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    state: CallState = CallState.PENDING


# ──────────────────────────────────────────────────────────────
#  Inbound HTTP
# ──────────────────────────────────────────────────────────────

class InitiateCallRequest(BaseModel):
    # null and numeric values are left to CallInitiator.validate
    name: Optional[Union[str, int]] = None
    phone: Optional[Union[str, int]] = None
    email: Optional[Union[str, int]] = None


class InitiateCallResponse(BaseModel):
    message: str
    callId: str


class CallEvent(BaseModel):
    """The `call` object of a provider webhook."""
    model_config = ConfigDict(extra="allow")

    call_id: str
    call_status: str = ""
    disconnection_reason: Optional[str] = None
    end_timestamp: Optional[Union[int, float, str]] = None
    start_timestamp: Optional[Union[int, float, str]] = None
    to_number: Optional[str] = None
    from_number: Optional[str] = None
    direction: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.call_status == "ended" and bool(self.end_timestamp)


class WebhookEnvelope(BaseModel):
    event: str
    call: CallEvent


# ──────────────────────────────────────────────────────────────
#  Voice provider
# ──────────────────────────────────────────────────────────────

class CallDetail(BaseModel):
    """Call as returned by the provider's get-call endpoint."""
    model_config = ConfigDict(extra="allow")

    call_id: str = ""
    call_status: str = ""
    transcript: Any = None
    duration_ms: Optional[int] = None
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    disconnection_reason: Optional[str] = None

    @property
    def has_transcript(self) -> bool:
        t = self.transcript
        if t is None:
            return False
        if isinstance(t, str):
            return bool(t.strip())
        if isinstance(t, (list, dict)):
            return len(t) > 0
        return True

    def formatted_transcript(self) -> str:
        """Plain-text transcript: strings verbatim, utterance lists as `Role: text`."""
        t = self.transcript
        if not self.has_transcript:
            return "No transcript available."
        if isinstance(t, str):
            return t
        if isinstance(t, list) and all(
            isinstance(u, dict) and "content" in u for u in t
        ):
            return "\n".join(
                f"{str(u.get('role', 'unknown')).capitalize()}: {u['content']}" for u in t
            )
        if isinstance(t, (list, dict)):
            return json.dumps(t, indent=2, ensure_ascii=False)
        return str(t)


# ──────────────────────────────────────────────────────────────
#  Delivery
# ──────────────────────────────────────────────────────────────

class DeliveryAttempt(BaseModel):
    transport: str
    status: str
    error: str = ""


class DeliveryResult(BaseModel):
    status: DeliveryOutcome
    transport: str = ""
    attempts: list[DeliveryAttempt] = []

    @property
    def delivered(self) -> bool:
        return self.status != DeliveryOutcome.FAILED
