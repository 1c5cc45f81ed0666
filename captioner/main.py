# FastAPI application factory.
# Entrypoint: uvicorn captioner.main:create_app --factory --host 0.0.0.0 --port 8080

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from captioner.config import Settings, get_settings
from captioner.exceptions import register_exception_handlers
from captioner.logging_config import configure_logging
from captioner.middleware import RequestContextMiddleware
from captioner.rate_limit import CaptionRateLimiter, limiter
from captioner.routes import caption, health
from captioner.routes import prometheus as prometheus_routes
from captioner.services.captioning import CaptionService, build_openai_client
from captioner.services.metrics import CaptionMetrics

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = structlog.get_logger(__name__)


async def _route_limit_exceeded(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """slowapi 429 in the same {"error", "type"} shape as CaptionServiceError."""
    # The limit that tripped, so the header always matches the serving app.
    window = exc.limit.limit.get_expiry()
    logger.warning(
        "route_rate_limited",
        path=request.url.path,
        detail=str(exc.detail),
        retry_after=window,
    )
    return JSONResponse(
        status_code=429,
        content={"error": f"Rate limit exceeded: {exc.detail}", "type": "RateLimitExceeded"},
        headers={"Retry-After": str(window)},
    )


# ── Tracing ──────────────────────────────────────────────────────────────────


def _span_exporter(name: str) -> "SpanExporter | None":
    match name:
        case "console":
            from opentelemetry.sdk.trace.export import ConsoleSpanExporter

            return ConsoleSpanExporter()
        case "otlp":
            try:
                from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                    OTLPSpanExporter,
                )
            except ImportError:
                logger.warning("otlp_exporter_not_installed", hint="pip install '.[otlp]'")
                return None
            return OTLPSpanExporter()
        case _:
            logger.warning("unknown_otel_exporter", exporter=name)
            return None


def _start_tracing(exporter_name: str) -> "TracerProvider | None":
    """Install a global tracer provider that batches spans to the named exporter."""
    exporter = _span_exporter(exporter_name)
    if exporter is None:
        return None

    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    logger.info("otel_configured", exporter=exporter_name)
    return provider


# ── State + lifespan ─────────────────────────────────────────────────────────


def init_state(app: FastAPI, settings: Settings) -> None:
    """Build the per-process collaborators and hang them on app.state."""
    client = build_openai_client(settings)
    if client is None:
        logger.error("upstream_key_missing", hint="Set OPENAI_API_KEY; captions will answer 500")

    rate_limiter = CaptionRateLimiter(settings.caption_rate_limit)
    metrics = CaptionMetrics()

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.caption_rate_limiter = rate_limiter
    app.state.openai_client = client
    app.state.caption_service = CaptionService(settings, rate_limiter, client, metrics=metrics)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Tracing up on startup; spans flushed and upstream pool closed on shutdown."""
    settings: Settings = app.state.settings
    provider = _start_tracing(settings.otel_exporter) if settings.otel_exporter else None

    yield

    client = app.state.openai_client
    if client is not None:
        await client.close()
    if provider is not None:
        provider.shutdown()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory. Invoked by: uvicorn captioner.main:create_app --factory"""
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="Image Caption Service",
        description="Moderated, rate-limited image captioning over a multimodal LLM",
        version="0.1.0",
        lifespan=lifespan,
    )
    init_state(app, settings)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _route_limit_exceeded)  # type: ignore[arg-type]

    # Starlette runs middleware in reverse order of registration: CORS first.
    app.add_middleware(RequestContextMiddleware)

    origins = settings.cors_origins
    if not origins:
        logger.warning("cors_no_origins_configured", hint="Set ALLOWED_ORIGINS")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(caption.router, tags=["caption"])
    app.include_router(prometheus_routes.router, tags=["prometheus"])

    return app
