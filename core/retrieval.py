"""
Transcript Retrieval — poll the provider until a finished call's transcript exists.

The provider finalizes transcripts some time after the call ends. Each
ended call gets one RetrievalJob running as its own asyncio task:

    attempt 1 ──fetch──► transcript? ──yes──► deliver ───────────► delivered
                             │ no
                             ▼
                    attempts left? ──no──► failure notice ───────► exhausted
                             │ yes
                        sleep(delay) ──► attempt n+1

    fetch raises ──► failure notice ──► failed   (remaining budget unused)

Jobs run in the background so the webhook that started them is
acknowledged immediately. They can be cancelled one by one or all at
shutdown; completion callbacks fire in every terminal state.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from core.delivery import DeliveryPipeline
from models.schemas import CallDetail, RetrievalStatus

logger = structlog.get_logger()


class CallDetailSource(Protocol):
    async def get_call(self, call_id: str) -> CallDetail:
        ...


@dataclass
class RetrievalJob:
    call_id: str
    email: str
    name: str
    max_attempts: int = 5
    delay_s: float = 15.0
    attempt: int = 0
    status: RetrievalStatus = RetrievalStatus.SCHEDULED
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status not in (RetrievalStatus.SCHEDULED, RetrievalStatus.POLLING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "delay_s": self.delay_s,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
        }


class TranscriptRetriever:
    """Schedules and tracks one polling job per ended call."""

    def __init__(
        self,
        provider: CallDetailSource,
        pipeline: DeliveryPipeline,
        max_attempts: int = 5,
        delay_s: float = 15.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.pipeline = pipeline
        self.max_attempts = max(1, max_attempts)
        self.delay_s = delay_s
        self._sleep = sleep
        self._jobs: dict[str, RetrievalJob] = {}

    def schedule(
        self,
        call_id: str,
        email: str,
        name: str,
        on_complete: Optional[Callable[[RetrievalJob], None]] = None,
    ) -> RetrievalJob:
        """Start polling in the background. A live job for the same call is reused."""
        existing = self._jobs.get(call_id)
        if existing is not None and not existing.done:
            logger.warning("retrieval_already_running", call_id=call_id,
                           attempt=existing.attempt)
            return existing

        job = RetrievalJob(
            call_id=call_id,
            email=email,
            name=name,
            max_attempts=self.max_attempts,
            delay_s=self.delay_s,
        )
        self._jobs[call_id] = job
        job.task = asyncio.create_task(
            self._poll(job), name=f"transcript_retrieval:{call_id}"
        )
        # Done callbacks also fire for a task cancelled before its first step
        job.task.add_done_callback(lambda _t: self._finished(job, on_complete))
        logger.info("retrieval_scheduled", call_id=call_id,
                    max_attempts=job.max_attempts, delay_s=job.delay_s)
        return job

    def _finished(
        self, job: RetrievalJob, on_complete: Optional[Callable[[RetrievalJob], None]]
    ) -> None:
        if job.task is not None and job.task.cancelled():
            job.status = RetrievalStatus.CANCELLED
            logger.info("retrieval_cancelled", call_id=job.call_id, attempt=job.attempt)
        elif job.task is not None and job.task.exception() is not None:
            job.status = RetrievalStatus.FAILED
            logger.error("retrieval_crashed", call_id=job.call_id,
                         error=str(job.task.exception()))
        if self._jobs.get(job.call_id) is job:
            del self._jobs[job.call_id]
        if on_complete is not None:
            try:
                on_complete(job)
            except Exception as e:
                logger.error("retrieval_callback_failed", call_id=job.call_id, error=str(e))

    async def _poll(self, job: RetrievalJob) -> None:
        job.status = RetrievalStatus.POLLING
        while True:
            job.attempt += 1
            logger.info("transcript_fetch_attempt", call_id=job.call_id,
                        attempt=job.attempt, max_attempts=job.max_attempts)
            try:
                detail = await self.provider.get_call(job.call_id)
            except Exception as e:
                job.status = RetrievalStatus.FAILED
                logger.error("transcript_fetch_failed", call_id=job.call_id,
                             attempt=job.attempt, error=str(e))
                await self.pipeline.send_failure_notice(job.email, job.name, job.call_id)
                return

            if detail.has_transcript:
                await self._deliver(job, detail)
                return

            if job.attempt >= job.max_attempts:
                job.status = RetrievalStatus.EXHAUSTED
                logger.error("transcript_unavailable", call_id=job.call_id,
                             attempts=job.attempt)
                await self.pipeline.send_failure_notice(job.email, job.name, job.call_id)
                return

            logger.info("transcript_not_ready", call_id=job.call_id,
                        attempt=job.attempt, retry_in_s=job.delay_s)
            await self._sleep(job.delay_s)

    async def _deliver(self, job: RetrievalJob, detail: CallDetail) -> None:
        try:
            result = await self.pipeline.deliver_transcript(
                job.email, job.name, detail, call_id=job.call_id
            )
        except Exception as e:
            job.status = RetrievalStatus.FAILED
            logger.error("transcript_delivery_error", call_id=job.call_id, error=str(e))
            await self.pipeline.send_failure_notice(job.email, job.name, job.call_id)
            return
        job.status = RetrievalStatus.DELIVERED
        logger.info("retrieval_complete", call_id=job.call_id, attempts=job.attempt,
                    delivery=result.status.value)

    # ── Introspection & control ───────────────────────────────

    def get(self, call_id: str) -> Optional[RetrievalJob]:
        return self._jobs.get(call_id)

    def active_jobs(self) -> list[RetrievalJob]:
        return [j for j in self._jobs.values() if not j.done]

    def cancel(self, call_id: str) -> bool:
        job = self._jobs.get(call_id)
        if job is None or job.task is None or job.task.done():
            return False
        job.task.cancel()
        return True

    async def join(self) -> None:
        """Wait for every live job to finish."""
        while True:
            tasks = [j.task for j in self._jobs.values() if j.task and not j.task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all live jobs and wait for them to unwind."""
        tasks = [j.task for j in self._jobs.values() if j.task and not j.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("retrieval_shutdown", cancelled=len(tasks))
