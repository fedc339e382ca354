"""Helpers for turning raw producer text into structured data."""

from __future__ import annotations

import json
from typing import Any

from handoff.config import MAX_RAW_OUTPUT_CHARS
from handoff.exceptions import ParseError

_BOM = "\ufeff"
_FENCE = "```"


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```), if any."""
    stripped = text.strip()
    if not stripped.startswith(_FENCE):
        return stripped

    # Drop the opening fence line, including any language tag.
    _, _, body = stripped.partition("\n")
    body = body.rstrip()
    if body.endswith(_FENCE):
        body = body[: -len(_FENCE)]
    return body.strip()


def parse_json(text: Any) -> Any:
    """Decode LLM output as JSON.

    Tolerates a leading byte-order mark, surrounding whitespace, and a
    markdown code fence around the payload.

    Raises:
        ParseError: If ``text`` is not a string or not valid JSON. The
            error carries the raw text (truncated) so the guard can feed
            it back to the next attempt.
    """
    if not isinstance(text, str):
        raise ParseError(
            f"Expected string, got {type(text).__name__}",
            str(text)[:MAX_RAW_OUTPUT_CHARS],
        )

    body = text[1:] if text.startswith(_BOM) else text
    body = strip_code_fence(body)

    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ParseError(str(exc), text) from exc
