"""
ServiceContext: the object graph one running app owns.

Built once at startup (or by a test with fakes) and handed to the HTTP
layer; nothing in the pipeline reaches for module-level state.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from channels.factory import build_transports
from channels.telephony.retell_client import RetellClient
from config.settings import Settings
from core.delivery import DeliveryPipeline
from core.dispatcher import WebhookDispatcher
from core.initiation import CallInitiator
from core.registry import CallRegistry
from core.retrieval import TranscriptRetriever

logger = structlog.get_logger()


@dataclass
class ServiceContext:
    settings: Settings
    registry: CallRegistry
    provider: Any
    pipeline: DeliveryPipeline
    retriever: TranscriptRetriever
    dispatcher: WebhookDispatcher
    initiator: CallInitiator
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self.started_at

    async def close(self) -> None:
        await self.retriever.shutdown()
        await self.pipeline.close()
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()
        logger.info("service_context_closed")


def build_context(
    settings: Settings,
    provider: Any = None,
    transports: Optional[list] = None,
    sleep=None,
) -> ServiceContext:
    """Wire registry, provider, transports, pipeline, retriever and handlers."""
    registry = CallRegistry(completed_ttl_s=settings.call.completed_ttl_s)
    if provider is None:
        provider = RetellClient(
            api_key=settings.retell.api_key,
            base_url=settings.retell.base_url,
            timeout_s=settings.call.timeout_s,
        )
    if transports is None:
        transports = build_transports(settings.email)

    pipeline = DeliveryPipeline(transports, from_name=settings.email.from_name)
    retriever_kwargs = {"sleep": sleep} if sleep is not None else {}
    retriever = TranscriptRetriever(
        provider,
        pipeline,
        max_attempts=settings.call.max_retries,
        delay_s=settings.call.retry_delay_s,
        **retriever_kwargs,
    )
    return ServiceContext(
        settings=settings,
        registry=registry,
        provider=provider,
        pipeline=pipeline,
        retriever=retriever,
        dispatcher=WebhookDispatcher(registry, retriever),
        initiator=CallInitiator(
            provider,
            registry,
            from_number=settings.retell.from_number,
            agent_id=settings.retell.agent_id,
            country_code=settings.call.country_code,
        ),
    )
