# ─────────────────────────────────────────────────────────────────────────────
# Test Fixtures — shared across all tests
# ─────────────────────────────────────────────────────────────────────────────

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from captioner.config import Settings
from captioner.main import create_app
from captioner.rate_limit import CaptionRateLimiter, limiter
from captioner.services.captioning import CaptionService
from captioner.services.metrics import CaptionMetrics
from tests.upstream_fakes import completion_response, moderation_response

# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_route_limiter():
    """The slowapi limiter is module-level; keep its counters per-test."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests — fake key, tight caption quota, console logs."""
    return Settings(
        openai_api_key="sk-test",
        caption_rate_limit="3/minute",
        allowed_origins="*",
        log_json=False,
        log_level="DEBUG",
    )


@pytest.fixture
def mock_openai() -> MagicMock:
    """AsyncOpenAI stand-in: clean moderation, completed response."""
    client = MagicMock()
    client.moderations.create = AsyncMock(
        return_value=moderation_response((False, {"violence": False, "sexual": False}))
    )
    client.responses.create = AsyncMock(return_value=completion_response())
    return client


@pytest.fixture
def rate_limiter(test_settings: Settings) -> CaptionRateLimiter:
    return CaptionRateLimiter(test_settings.caption_rate_limit)


@pytest.fixture
def metrics() -> CaptionMetrics:
    return CaptionMetrics()


@pytest.fixture
def caption_service(
    test_settings: Settings,
    rate_limiter: CaptionRateLimiter,
    mock_openai: MagicMock,
    metrics: CaptionMetrics,
) -> CaptionService:
    return CaptionService(test_settings, rate_limiter, mock_openai, metrics=metrics)


@pytest.fixture
def app(
    test_settings: Settings,
    rate_limiter: CaptionRateLimiter,
    caption_service: CaptionService,
    metrics: CaptionMetrics,
):
    """App with the upstream client swapped for mock_openai.

    State is replaced after create_app() so no real AsyncOpenAI client is
    ever used; the lifespan does not build collaborators.
    """
    app = create_app(test_settings)
    app.state.openai_client = None
    app.state.metrics = metrics
    app.state.caption_rate_limiter = rate_limiter
    app.state.caption_service = caption_service
    return app


@pytest.fixture
def client(app) -> TestClient:
    """FastAPI TestClient over the mocked app."""
    return TestClient(app)
