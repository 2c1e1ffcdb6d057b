"""
CallRegistry — volatile call_id → CallRecord map.

Features:
  - Zero dependencies (no database, no Redis)
  - Safe without locks: every method is synchronous and runs on the
    single event loop, so claim() is atomic against other webhooks
  - Completed call ids are kept as TTL tombstones so a redelivered
    call_ended webhook is recognised instead of reported as unknown
  - All data lost on process restart
"""
from __future__ import annotations

import time
from typing import Optional

import structlog

from models.schemas import CallRecord, CallState

logger = structlog.get_logger()


class CallRegistry:

    def __init__(self, completed_ttl_s: float = 3600.0, max_completed: int = 5000):
        self._records: dict[str, CallRecord] = {}
        self._completed: dict[str, float] = {}      # call_id → monotonic time finished
        self.completed_ttl_s = completed_ttl_s
        self.max_completed = max_completed

    # ── Basic map ─────────────────────────────────────────

    def put(self, call_id: str, record: CallRecord) -> None:
        if call_id in self._records:
            logger.warning("call_record_replaced", call_id=call_id)
        self._records[call_id] = record
        self._completed.pop(call_id, None)
        logger.info("call_registered", call_id=call_id, active=len(self._records))

    def get(self, call_id: str) -> Optional[CallRecord]:
        return self._records.get(call_id)

    def delete(self, call_id: str) -> Optional[CallRecord]:
        record = self._records.pop(call_id, None)
        if record is not None:
            logger.info("call_unregistered", call_id=call_id, active=len(self._records))
        return record

    def ids(self) -> list[str]:
        return list(self._records.keys())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._records

    # ── Lifecycle ─────────────────────────────────────────

    def claim(self, call_id: str) -> Optional[CallRecord]:
        """
        Move a pending record to processing and return it.

        Returns None when the record is missing or already claimed, which
        is how duplicate call_ended deliveries are turned away.
        """
        record = self._records.get(call_id)
        if record is None or record.state != CallState.PENDING:
            return None
        claimed = record.model_copy(update={"state": CallState.PROCESSING})
        self._records[call_id] = claimed
        return claimed

    def complete(self, call_id: str) -> Optional[CallRecord]:
        """Remove the record and remember the id as finished."""
        record = self.delete(call_id)
        self._prune()
        self._completed[call_id] = time.monotonic()
        if len(self._completed) > self.max_completed:
            oldest = min(self._completed, key=self._completed.get)
            del self._completed[oldest]
        return record

    def is_completed(self, call_id: str) -> bool:
        self._prune()
        return call_id in self._completed

    def state_of(self, call_id: str) -> Optional[CallState]:
        record = self._records.get(call_id)
        if record is not None:
            return record.state
        if self.is_completed(call_id):
            return CallState.DONE
        return None

    def _prune(self) -> None:
        cutoff = time.monotonic() - self.completed_ttl_s
        expired = [k for k, t in self._completed.items() if t < cutoff]
        for k in expired:
            del self._completed[k]
