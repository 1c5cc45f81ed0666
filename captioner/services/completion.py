# Completion dispatcher: sends the chat input plus instructions to the
# Responses API and unwraps the generated text.

from collections.abc import Sequence
from typing import Any

import structlog
from openai import AsyncOpenAI
from opentelemetry import trace

from captioner.exceptions import UpstreamStatusError
from captioner.schemas import CaptionResult, Message

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

COMPLETED_STATUS = "completed"
EMPTY_OUTPUT_PLACEHOLDER = "Response received"


class CompletionDispatcher:
    """Single-shot calls to the upstream Responses API."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self._client = client

    async def complete(
        self, model: str, instructions: str, messages: Sequence[Message]
    ) -> CaptionResult:
        """Run one completion; anything but a 'completed' run is an error."""
        payload: list[dict[str, Any]] = [m.model_dump(mode="json") for m in messages]

        with tracer.start_as_current_span("completion") as span:
            span.set_attribute("model", model)
            response = await self._client.responses.create(
                model=model,
                instructions=instructions,
                input=payload,  # type: ignore[arg-type]
            )
            span.set_attribute("upstream_status", str(response.status))

        if response.status != COMPLETED_STATUS:
            logger.error("upstream_status_error", status=response.status, model=model)
            raise UpstreamStatusError(response.status)

        return CaptionResult(text=response.output_text or EMPTY_OUTPUT_PLACEHOLDER)
