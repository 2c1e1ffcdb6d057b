"""
FastAPI Application — call form intake + provider webhooks.

Provides:
- POST /api/initiate-call   place an outbound call for a form submission
- POST <webhook path>       provider call lifecycle webhooks (default "/")
- GET  /health              liveness plus registry, retrieval and transport stats
- GET  /api/status          short status summary
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.logging import configure_logging
from config.settings import Settings, describe_settings, get_settings, validate_settings
from core.context import ServiceContext, build_context
from core.errors import PayloadError, ProviderError, ValidationError
from models.schemas import InitiateCallRequest, InitiateCallResponse

logger = structlog.get_logger()


def _context(request: Request) -> ServiceContext:
    return request.app.state.context


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[ServiceContext] = None,
) -> FastAPI:
    """
    Build the app. With a context (tests) it is used as-is; otherwise one is
    built from validated settings when the app starts.
    """
    settings = context.settings if context is not None else (settings or get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.logging.level, settings.logging.json)
        owns_context = getattr(app.state, "context", None) is None
        if owns_context:
            validate_settings(settings)
            app.state.context = build_context(settings)
        logger.info("transcript_relay_started", **describe_settings(settings))
        yield
        if owns_context:
            await app.state.context.close()
        logger.info("transcript_relay_stopped")

    app = FastAPI(
        title="TranscriptRelay API",
        description="Outbound AI calls with transcripts delivered by email",
        version=settings.version,
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    origins = (
        settings.server.production_origins
        if settings.is_production
        else settings.server.cors_origins
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ══════════════════════════════════════════════════════════
    #  ERROR MAPPING
    # ══════════════════════════════════════════════════════════

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(PayloadError)
    async def payload_error(request: Request, exc: PayloadError):
        logger.error("webhook_payload_invalid", error=exc.message)
        return JSONResponse(status_code=400, content={"error": "Invalid payload structure"})

    @app.exception_handler(ProviderError)
    async def provider_error(request: Request, exc: ProviderError):
        logger.error("provider_error", error=exc.message, status=exc.status_code)
        return JSONResponse(status_code=500, content={"error": "Call initiation failed."})

    # ══════════════════════════════════════════════════════════
    #  CALL INTAKE
    # ══════════════════════════════════════════════════════════

    @app.post("/api/initiate-call", response_model=InitiateCallResponse)
    async def initiate_call(req: InitiateCallRequest, request: Request):
        ctx = _context(request)
        call_id = await ctx.initiator.initiate(req.name, req.phone, req.email)
        logger.info("active_call_mappings", count=len(ctx.registry))
        return InitiateCallResponse(message="Call initiated successfully.", callId=call_id)

    # ══════════════════════════════════════════════════════════
    #  PROVIDER WEBHOOK
    # ══════════════════════════════════════════════════════════

    @app.post(settings.retell.webhook_path)
    async def call_webhook(request: Request):
        try:
            body = await request.json()
        except ValueError:
            raise PayloadError("Webhook body is not valid JSON")

        ctx = _context(request)
        try:
            return await ctx.dispatcher.handle(body)
        except PayloadError:
            raise
        except Exception as e:
            call_id = (body.get("call") or {}).get("call_id") if isinstance(body, dict) else None
            logger.error("webhook_processing_error", call_id=call_id,
                         webhook_event=body.get("event"), error=str(e))
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "call_id": call_id},
            )

    # ══════════════════════════════════════════════════════════
    #  HEALTH & STATUS
    # ══════════════════════════════════════════════════════════

    @app.get("/health")
    async def health(request: Request):
        ctx = _context(request)
        return {
            "status": "healthy",
            "activeCallsCount": len(ctx.registry),
            "activeCalls": ctx.registry.ids(),
            "activeRetrievals": [j.to_dict() for j in ctx.retriever.active_jobs()],
            "transports": ctx.pipeline.health(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": ctx.settings.version,
            "uptime": round(ctx.uptime_s, 1),
        }

    @app.get("/api/status")
    async def status(request: Request):
        ctx = _context(request)
        return {
            "message": f"{ctx.settings.app_name} API is running",
            "environment": ctx.settings.server.environment,
            "retellFromNumber": ctx.settings.retell.from_number,
            "activeCallMappings": len(ctx.registry),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    _settings = get_settings()
    uvicorn.run(app, host=_settings.server.host, port=_settings.server.port)
