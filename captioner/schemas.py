# ─────────────────────────────────────────────────────────────────────────────
# Pydantic v2 Request / Response Schemas
# ─────────────────────────────────────────────────────────────────────────────


from dataclasses import dataclass, field
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class TextPart(BaseModel):
    """Free text inside a message."""

    type: Literal["input_text"] = "input_text"
    text: str


class ImagePart(BaseModel):
    """Image reference: remote URL or inlined data URI."""

    type: Literal["input_image"] = "input_image"
    image_url: str


# Closed union, dispatched on the "type" tag. Unknown tags fail validation.
ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class Message(BaseModel):
    """One role-tagged message with ordered content parts."""

    role: str = Field(..., min_length=1, description="e.g. 'user'")
    content: list[ContentPart] = Field(..., min_length=1)


class CaptionRequest(BaseModel):
    """Incoming body of POST /api/openai/responses."""

    input: list[Message] = Field(..., min_length=1)


class CaptionResponse(BaseModel):
    """Successful caption or answer."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    original_input: list[Message] = Field(..., alias="originalInput")
    remaining_requests: int = Field(..., ge=0, alias="remainingRequests")


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    error: str
    type: str | None = None


class LivenessResponse(BaseModel):
    """Liveness probe — minimal, near-zero cost."""

    status: str = "ok"


class ReadinessResponse(BaseModel):
    """Readiness probe. Deliberately says nothing about why it is not ready."""

    status: str  # "ready" or "not_ready"


# ── Pipeline values (never serialized directly) ─────────────────────────────


@dataclass(frozen=True)
class ModerationResult:
    """Verdict for one submitted image."""

    flagged: bool
    categories: dict[str, bool] = field(default_factory=dict)

    @property
    def flagged_categories(self) -> list[str]:
        """Category keys whose value is true, in upstream key order."""
        return [name for name, hit in self.categories.items() if hit]


@dataclass(frozen=True)
class CaptionResult:
    """Final text produced by the upstream model."""

    text: str
