# Text checks applied before any upstream call. Images are never inspected here.

from typing import NamedTuple


class TextValidation(NamedTuple):
    is_valid: bool
    error: str | None = None


def validate_text(text: str, max_length: int) -> TextValidation:
    """Reject empty/blank text and text longer than max_length characters."""
    if not text or not text.strip():
        return TextValidation(False, "Input text cannot be empty")
    if len(text) > max_length:
        return TextValidation(
            False, f"Input text exceeds maximum length of {max_length} characters"
        )
    return TextValidation(True)
