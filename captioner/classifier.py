# ─────────────────────────────────────────────────────────────────────────────
# Request Classifier — does the chat input carry an image?
# ─────────────────────────────────────────────────────────────────────────────
# The answer picks three things downstream: the text that gets validated,
# whether moderation runs, and which instruction template goes upstream.
# ─────────────────────────────────────────────────────────────────────────────

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import assert_never

from captioner.schemas import ImagePart, Message, TextPart


@dataclass(frozen=True)
class RequestClassification:
    has_image: bool
    text: str  # every text part, joined by a single space
    image_urls: list[str] = field(default_factory=list)


def classify(messages: Sequence[Message]) -> RequestClassification:
    """Walk every content part of every message, in order."""
    texts: list[str] = []
    image_urls: list[str] = []
    has_image = False

    for message in messages:
        for part in message.content:
            match part:
                case TextPart(text=text):
                    texts.append(text)
                case ImagePart(image_url=url):
                    has_image = True
                    if url:
                        image_urls.append(url)
                case _:
                    assert_never(part)

    return RequestClassification(
        has_image=has_image,
        text=" ".join(texts),
        image_urls=image_urls,
    )
