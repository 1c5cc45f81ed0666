# ─────────────────────────────────────────────────────────────────────────────
# Health Check Routes — liveness, readiness, metrics
# ─────────────────────────────────────────────────────────────────────────────
#   /health        → Liveness probe. Near-zero cost, always 200.
#   /health/ready  → Readiness probe. 503 until the upstream client exists.
#                    The body never says why (credential state stays private).
#   /metrics       → Request outcome counters and upstream latency.
# ─────────────────────────────────────────────────────────────────────────────

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from captioner.dependencies import get_caption_service, get_metrics
from captioner.schemas import LivenessResponse, ReadinessResponse
from captioner.services.captioning import CaptionService
from captioner.services.metrics import CaptionMetrics

router = APIRouter()


@router.get("/health", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe — is the process alive? No deps, no I/O."""
    return LivenessResponse(status="ok")


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(
    service: CaptionService = Depends(get_caption_service),
) -> JSONResponse:
    """Readiness probe — can this instance caption anything at all?"""
    ready = service.upstream_configured
    response = ReadinessResponse(status="ready" if ready else "not_ready")
    return JSONResponse(
        status_code=200 if ready else 503,
        content=response.model_dump(),
    )


@router.get("/metrics")
async def metrics_endpoint(
    metrics: CaptionMetrics = Depends(get_metrics),
) -> dict[str, Any]:
    """Request outcome counters and latency percentiles."""
    return metrics.to_dict()
