#!/usr/bin/env python3
"""Caption one image through a running caption service.

Usage:
    # Remote image:
    uv run python scripts/caption_image.py --url https://example.com/dog.jpg

    # Local file, 30-word target, two tones:
    uv run python scripts/caption_image.py --file photo.png --max-words 30 \\
        --tone Fun --tone Poetic --server http://localhost:8080
"""

from __future__ import annotations

import argparse
import sys

import httpx

from captioner.client import CaptionClient, CaptionRequestError
from captioner.prompts import DEFAULT_MAX_WORDS, MAX_WORDS, MIN_WORDS, Tone


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", default="", help="Image URL to caption")
    source.add_argument("--file", default=None, help="Local image file to caption")
    parser.add_argument(
        "--server",
        default="http://localhost:8080",
        help="Caption service base URL (default: http://localhost:8080)",
    )
    parser.add_argument(
        "--max-words",
        type=int,
        default=DEFAULT_MAX_WORDS,
        help=f"Target caption length, {MIN_WORDS}-{MAX_WORDS} words (default: {DEFAULT_MAX_WORDS})",
    )
    parser.add_argument(
        "--tone",
        action="append",
        default=[],
        choices=[str(t) for t in Tone],
        help="Caption tone; repeat for several",
    )
    args = parser.parse_args()

    if not MIN_WORDS <= args.max_words <= MAX_WORDS:
        parser.error(f"--max-words must be between {MIN_WORDS} and {MAX_WORDS}")

    with CaptionClient(args.server) as client:
        try:
            caption = client.caption(
                image_url=args.url,
                image_file=args.file,
                max_words=args.max_words,
                tones=args.tone,
            )
        except CaptionRequestError as e:
            print(f"❌ {e.message}", file=sys.stderr)
            sys.exit(1)
        except (httpx.RequestError, ValueError, OSError) as e:
            print(f"❌ {e}", file=sys.stderr)
            sys.exit(1)

    print(caption)
    print(f"\n({client.remaining_requests} requests remaining)", file=sys.stderr)


if __name__ == "__main__":
    main()
