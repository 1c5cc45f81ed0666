# Moderation gate: one batched upstream moderation call per request.
# Flagged content is rejected with the offending category names.

from collections.abc import Sequence
from typing import Any

import structlog
from openai import AsyncOpenAI
from opentelemetry import trace

from captioner.exceptions import ContentFlaggedError
from captioner.schemas import ModerationResult

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def _categories_mapping(categories: Any) -> dict[str, bool]:
    """API-named category flags, in the order the upstream returned them."""
    # exclude_unset keeps only keys present in the upstream payload.
    return {name: bool(hit) for name, hit in categories.to_dict().items()}


class ModerationGate:
    """Screens image URLs with the upstream moderation endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str = "omni-moderation-latest") -> None:
        self._client = client
        self._model = model

    async def moderate(self, image_urls: Sequence[str]) -> list[ModerationResult]:
        """One result per submitted image. No upstream call for an empty batch."""
        if not image_urls:
            return []

        with tracer.start_as_current_span("moderation") as span:
            span.set_attribute("images", len(image_urls))
            response = await self._client.moderations.create(
                model=self._model,
                input=[{"type": "image_url", "image_url": {"url": url}} for url in image_urls],
            )

        return [
            ModerationResult(
                flagged=bool(result.flagged),
                categories=_categories_mapping(result.categories),
            )
            for result in response.results
        ]

    async def check(self, image_urls: Sequence[str], inspect_all: bool = False) -> None:
        """Raise ContentFlaggedError if the batch is flagged.

        With inspect_all=False only the first result gates the request.
        Otherwise every result is checked and the flagged categories are
        merged in first-seen order.
        """
        results = await self.moderate(image_urls)
        if not results:
            return

        gating = results if inspect_all else results[:1]
        flagged: list[str] = []
        for result in gating:
            if not result.flagged:
                continue
            for name in result.flagged_categories:
                if name not in flagged:
                    flagged.append(name)

        if any(result.flagged for result in gating):
            logger.warning("content_flagged", categories=flagged, images=len(image_urls))
            raise ContentFlaggedError(flagged)
