# ─────────────────────────────────────────────────────────────────────────────
# Dependency Injection — FastAPI Depends() providers
# ─────────────────────────────────────────────────────────────────────────────
# State flows: create_app() → init_state() builds → app.state stores →
# Depends() injects.
# ─────────────────────────────────────────────────────────────────────────────


from fastapi import Request

from captioner.services.captioning import CaptionService
from captioner.services.metrics import CaptionMetrics


def get_metrics(request: Request) -> CaptionMetrics:
    """Inject CaptionMetrics into endpoints via Depends()."""
    return request.app.state.metrics  # type: ignore[no-any-return]


def get_caption_service(request: Request) -> CaptionService:
    """Inject CaptionService into endpoints via Depends()."""
    return request.app.state.caption_service  # type: ignore[no-any-return]
