"""
Webhook Event Dispatcher — routes provider call lifecycle events.

    call_started    informational
    call_ended      status "ended" + end_timestamp → claim record, start retrieval
                    anything else                  → drop the record, no retrieval
    call_analyzed   informational
    (other)         informational

Any envelope that parses is acknowledged with success, whatever happens
to transcript retrieval or delivery later. Only a malformed envelope is
rejected (PayloadError).
"""
from __future__ import annotations

from typing import Any

import structlog

from core.errors import PayloadError
from core.registry import CallRegistry
from core.retrieval import RetrievalJob, TranscriptRetriever
from models.schemas import CallEvent, WebhookEnvelope, WebhookEvent

logger = structlog.get_logger()


def parse_envelope(body: Any) -> WebhookEnvelope:
    if not isinstance(body, dict):
        raise PayloadError("Invalid payload structure")
    event = body.get("event")
    call = body.get("call")
    if not event or not isinstance(event, str):
        raise PayloadError("Invalid payload structure: missing event")
    if not isinstance(call, dict) or not call.get("call_id"):
        raise PayloadError("Invalid payload structure: missing call.call_id")
    try:
        return WebhookEnvelope(event=event, call=CallEvent.model_validate(call))
    except ValueError as e:
        raise PayloadError(f"Invalid payload structure: {e}") from e


class WebhookDispatcher:

    def __init__(self, registry: CallRegistry, retriever: TranscriptRetriever):
        self.registry = registry
        self.retriever = retriever

    async def handle(self, body: Any) -> dict[str, Any]:
        envelope = parse_envelope(body)
        event, call = envelope.event, envelope.call
        logger.info(
            "webhook_received",
            webhook_event=event,
            call_id=call.call_id,
            status=call.call_status,
            direction=call.direction,
        )

        if event == WebhookEvent.CALL_STARTED.value:
            logger.info("call_started", call_id=call.call_id)
        elif event == WebhookEvent.CALL_ENDED.value:
            self._on_call_ended(call)
        elif event == WebhookEvent.CALL_ANALYZED.value:
            logger.info("call_analyzed", call_id=call.call_id)
        else:
            logger.info("webhook_event_unknown", webhook_event=event, call_id=call.call_id)

        return {"success": True, "message": f"Webhook processed for event: {event}"}

    def _on_call_ended(self, call: CallEvent) -> None:
        call_id = call.call_id
        logger.info("call_ended", call_id=call_id, reason=call.disconnection_reason)

        if not call.completed:
            logger.info("call_not_processed", call_id=call_id, status=call.call_status,
                        reason=call.disconnection_reason)
            if self.registry.delete(call_id) is not None:
                logger.info("failed_call_mapping_removed", call_id=call_id)
            return

        record = self.registry.claim(call_id)
        if record is None:
            state = self.registry.state_of(call_id)
            if state is None:
                logger.warning("call_mapping_not_found", call_id=call_id,
                               active=len(self.registry))
            else:
                logger.info("call_already_processed", call_id=call_id, state=state.value)
            return

        logger.info("transcript_processing_started", call_id=call_id,
                    email=record.email, name=record.name)
        self.retriever.schedule(
            call_id,
            record.email,
            record.name,
            on_complete=self._on_retrieval_done,
        )

    def _on_retrieval_done(self, job: RetrievalJob) -> None:
        self.registry.complete(job.call_id)
        logger.info("call_mapping_cleaned_up", call_id=job.call_id, outcome=job.status.value)
