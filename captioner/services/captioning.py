# Caption orchestrator: quota → parse → classify → validate → credential →
# moderation → completion. Each gate short-circuits with a CaptionServiceError.


import time

import openai
import pydantic
import structlog
from openai import AsyncOpenAI
from opentelemetry import trace

from captioner.classifier import classify
from captioner.config import Settings
from captioner.exceptions import (
    CaptionRateLimitError,
    CaptionServiceError,
    ConfigurationError,
    ContentFlaggedError,
    InputValidationError,
    UnhandledCaptionError,
    UpstreamStatusError,
)
from captioner.prompts import get_instructions
from captioner.rate_limit import CaptionRateLimiter
from captioner.schemas import CaptionRequest, CaptionResponse
from captioner.services.completion import CompletionDispatcher
from captioner.services.metrics import CaptionMetrics
from captioner.services.moderation import ModerationGate
from captioner.validation import validate_text

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def build_openai_client(settings: Settings) -> AsyncOpenAI | None:
    """Upstream client, or None when no API key is configured.

    Retries are disabled: a timeout or transient upstream failure surfaces
    to the caller as a 500 on the first attempt.
    """
    if not settings.upstream_configured:
        return None
    return AsyncOpenAI(
        api_key=settings.openai_api_key.get_secret_value(),
        base_url=settings.openai_base_url or None,
        timeout=settings.upstream_timeout_seconds,
        max_retries=0,
    )


def _outcome_for(exc: CaptionServiceError) -> str:
    if isinstance(exc, CaptionRateLimitError):
        return "rate_limited"
    if isinstance(exc, InputValidationError):
        return "invalid"
    if isinstance(exc, ContentFlaggedError):
        return "flagged"
    if isinstance(exc, UpstreamStatusError):
        return "upstream_error"
    return "error"


class CaptionService:
    """Runs one caption request through every gate, in order."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: CaptionRateLimiter,
        client: AsyncOpenAI | None,
        metrics: CaptionMetrics | None = None,
    ) -> None:
        self._settings = settings
        self._rate_limiter = rate_limiter
        self._metrics = metrics
        self._moderation = ModerationGate(client, settings.moderation_model) if client else None
        self._completion = CompletionDispatcher(client) if client else None

    @property
    def upstream_configured(self) -> bool:
        return self._completion is not None

    async def caption(self, identity: str, raw_body: bytes) -> CaptionResponse:
        """Full request pipeline for one identity and one raw JSON body."""
        with tracer.start_as_current_span("caption"):
            start = time.perf_counter()
            try:
                response, outcome = await self._caption_traced(identity, raw_body)
            except CaptionServiceError as exc:
                self._record(_outcome_for(exc))
                raise
            except openai.APIError as exc:
                logger.error(
                    "upstream_request_failed", error=str(exc), error_type=type(exc).__name__
                )
                self._record("upstream_error")
                raise UnhandledCaptionError(str(exc)) from exc
            except Exception as exc:
                logger.exception("caption_unhandled_error")
                self._record("error")
                raise UnhandledCaptionError(str(exc)) from exc

            self._record(outcome, (time.perf_counter() - start) * 1000)
            return response

    async def _caption_traced(self, identity: str, raw_body: bytes) -> tuple[CaptionResponse, str]:
        if not self._rate_limiter.check_limit(identity):
            retry_after = max(1.0, self._rate_limiter.reset_time(identity) - time.time())
            logger.warning("caption_rate_limited", identity=identity, retry_after=retry_after)
            raise CaptionRateLimitError(retry_after)

        request = self._parse(raw_body)
        classification = classify(request.input)

        validation = validate_text(classification.text, self._settings.max_input_text_length)
        if not validation.is_valid:
            logger.info("caption_input_invalid", reason=validation.error)
            raise InputValidationError(validation.error or "Invalid input")

        if self._moderation is None or self._completion is None:
            # Operators see this; clients only get the generic message.
            logger.error("upstream_key_missing", hint="Set OPENAI_API_KEY")
            raise ConfigurationError()

        if classification.has_image:
            await self._moderation.check(
                classification.image_urls,
                inspect_all=self._settings.moderate_all_images,
            )

        result = await self._completion.complete(
            self._settings.model,
            get_instructions(classification.has_image),
            request.input,
        )

        remaining = self._rate_limiter.get_remaining(identity)
        logger.info(
            "caption_completed",
            has_image=classification.has_image,
            images=len(classification.image_urls),
            remaining=remaining,
        )
        response = CaptionResponse(
            response=result.text,
            original_input=request.input,
            remaining_requests=remaining,
        )
        return response, "caption" if classification.has_image else "answer"

    @staticmethod
    def _parse(raw_body: bytes) -> CaptionRequest:
        try:
            return CaptionRequest.model_validate_json(raw_body)
        except pydantic.ValidationError as exc:
            logger.info("caption_input_malformed", errors=exc.error_count())
            raise InputValidationError() from None

    def _record(self, outcome: str, latency_ms: float | None = None) -> None:
        if self._metrics:
            self._metrics.record_request(outcome, latency_ms)
