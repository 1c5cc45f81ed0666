# ─────────────────────────────────────────────────────────────────────────────
# Prompt Templates — upstream instructions and the client caption prompt
# ─────────────────────────────────────────────────────────────────────────────

from collections.abc import Iterable
from enum import StrEnum


class Tone(StrEnum):
    """Caption tones offered to the user."""

    professional = "Professional"
    fun = "Fun"
    poetic = "Poetic"
    casual = "Casual"


DEFAULT_TONE = "default"
DEFAULT_MAX_WORDS = 20
MIN_WORDS = 1
MAX_WORDS = 50

GENERAL_INSTRUCTIONS = (
    "You are a helpful assistant who knows general knowledge about the world. "
    "Keep your responses to one or two sentences, maximum."
)

CAPTION_INSTRUCTIONS = (
    "You are a helpful assistant who generates image captions. "
    "When the user asks for a number of words, aim to use close to that many "
    "words; treat it as a target, not only as an upper limit. "
    "Keep your captions concise and engaging."
)


def get_instructions(has_image: bool) -> str:
    """Instruction template for the upstream model.

    Image requests get the captioning template; text-only requests get the
    short general-knowledge template.
    """
    return CAPTION_INSTRUCTIONS if has_image else GENERAL_INSTRUCTIONS


def build_caption_prompt(max_words: int, tones: Iterable[Tone | str] = ()) -> str:
    """User-side text that accompanies the image.

    Args:
        max_words: Target caption length, 1 to 50 words.
        tones: Selected tones; none selected means "default".

    Returns:
        e.g. "Describe this image in 20 words or less. Use a Fun, Poetic tone."
    """
    if not MIN_WORDS <= max_words <= MAX_WORDS:
        raise ValueError(f"max_words must be between {MIN_WORDS} and {MAX_WORDS}")

    selected = [str(Tone(t)) for t in tones]
    tone_set = ", ".join(selected) if selected else DEFAULT_TONE
    return f"Describe this image in {max_words} words or less. Use a {tone_set} tone."
