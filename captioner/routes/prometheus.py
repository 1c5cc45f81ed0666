# ─────────────────────────────────────────────────────────────────────────────
# Prometheus Metrics Endpoint — text exposition format
# ─────────────────────────────────────────────────────────────────────────────
# GET /metrics/prometheus → text/plain Prometheus format
# Bridges CaptionMetrics → prometheus-client gauges.
# ─────────────────────────────────────────────────────────────────────────────

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CollectorRegistry, Gauge, generate_latest

from captioner.dependencies import get_metrics
from captioner.services.metrics import CaptionMetrics

router = APIRouter()

# ── Prometheus metrics (custom registry to avoid default process metrics) ─────

_registry = CollectorRegistry()

_requests = Gauge(
    "captioner_requests",
    "Caption requests seen since start, by outcome",
    ["outcome"],
    registry=_registry,
)

_errors = Gauge(
    "captioner_errors",
    "Caption requests answered with a server error, any cause",
    registry=_registry,
)

_latency_p95 = Gauge(
    "captioner_upstream_latency_p95_seconds",
    "95th percentile latency of requests that reached the upstream model",
    registry=_registry,
)

_OUTCOME_FIELDS = {
    "caption": "captions_completed",
    "answer": "answers_completed",
    "rate_limited": "rate_limited",
    "invalid": "invalid_inputs",
    "flagged": "flagged_inputs",
    "upstream_error": "upstream_failures",
}


def _sync_metrics(metrics: CaptionMetrics) -> None:
    """Sync CaptionMetrics data into Prometheus gauges."""
    data = metrics.to_dict()

    for outcome, key in _OUTCOME_FIELDS.items():
        _requests.labels(outcome=outcome).set(data[key])

    _errors.set(data["errors_total"])
    _latency_p95.set(data["latency_p95_ms"] / 1000)


@router.get("/metrics/prometheus")
async def prometheus_metrics(
    metrics: CaptionMetrics = Depends(get_metrics),
) -> Response:
    """Prometheus text exposition format metrics endpoint."""
    _sync_metrics(metrics)
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
