# ─────────────────────────────────────────────────────────────────────────────
# Custom Exceptions + FastAPI Exception Handlers
# ─────────────────────────────────────────────────────────────────────────────


import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)

# The only thing a client learns about a missing upstream credential.
SERVICE_UNAVAILABLE_MESSAGE = "Caption service temporarily unavailable"
INVALID_INPUT_MESSAGE = "Invalid input format"
UNHANDLED_FALLBACK_MESSAGE = "Caption generation failed"


# ── Exception hierarchy ──────────────────────────────────────────────────────


class CaptionServiceError(Exception):
    """Base exception for all caption service errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InputValidationError(CaptionServiceError):
    """Malformed request body or text that fails validation (user-correctable)."""

    def __init__(self, message: str = INVALID_INPUT_MESSAGE):
        super().__init__(message, status_code=400)


class ContentFlaggedError(CaptionServiceError):
    """Raised when upstream moderation flags a submitted image."""

    def __init__(self, categories: list[str]):
        self.categories = categories
        super().__init__(
            f"Content flagged as inappropriate: {', '.join(categories)}",
            status_code=400,
        )


class CaptionRateLimitError(CaptionServiceError):
    """Raised when an identity has used up its caption quota for the window.

    Carries retry_after_seconds so the handler can set Retry-After.
    """

    def __init__(self, retry_after_seconds: float = 60.0):
        self.retry_after_seconds = retry_after_seconds
        super().__init__("Rate limit exceeded. Please try again later.", status_code=429)


class ConfigurationError(CaptionServiceError):
    """Operator-correctable misconfiguration. The client message stays vague."""

    def __init__(self) -> None:
        super().__init__(SERVICE_UNAVAILABLE_MESSAGE, status_code=500)


class UpstreamStatusError(CaptionServiceError):
    """Raised when the upstream run does not finish with status 'completed'."""

    def __init__(self, status: str | None):
        self.upstream_status = status
        super().__init__(f"Responses API error: {status}", status_code=500)


class UnhandledCaptionError(CaptionServiceError):
    """Any other failure while captioning, surfaced with its own message."""

    def __init__(self, message: str = ""):
        super().__init__(message or UNHANDLED_FALLBACK_MESSAGE, status_code=500)


# ── Handler registration ────────────────────────────────────────────────────


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app.

    The caption service raises CaptionServiceError subclasses; these handlers
    turn them into {"error", "type"} JSON -- no inline try/except in endpoints.
    """

    @app.exception_handler(CaptionRateLimitError)
    async def caption_rate_limit_handler(
        request: Request, exc: CaptionRateLimitError
    ) -> JSONResponse:
        """429 with Retry-After header."""
        retry_after = max(1, int(exc.retry_after_seconds))
        logger.warning(
            "caption_rate_limited_response",
            error=exc.message,
            retry_after=retry_after,
        )
        return JSONResponse(
            status_code=429,
            content={"error": exc.message, "type": "CaptionRateLimitError"},
            headers={"Retry-After": str(retry_after)},
        )

    @app.exception_handler(CaptionServiceError)
    async def caption_error_handler(request: Request, exc: CaptionServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "caption_error", error=exc.message, error_type=type(exc).__name__, exc_info=exc
            )
        else:
            logger.info("caption_rejected", error=exc.message, error_type=type(exc).__name__)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "type": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_error", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "type": "UnhandledError"},
        )
