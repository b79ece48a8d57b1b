"""
NFTickr - Best-effort JSON extraction from free-form model output

Generative models wrap the requested JSON in prose or markdown fences. The
extractor tries a strict decode of the whole text first, then scans for the
first balanced top-level object with a bracket-depth scanner that understands
JSON strings and escapes. Anything else, including nesting too deep for the
decoder, is a DecodeError.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from nftickr.errors import DecodeError

logger = structlog.get_logger(__name__)


def find_balanced_object(text: str) -> str | None:
    """
    Return the first balanced `{...}` substring of `text`, or None.

    Braces inside JSON string literals are ignored, so `{"a": "}"}` is
    returned whole.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Decode the JSON object embedded in `text`.

    Args:
        text: Raw model output.

    Returns:
        The decoded object.

    Raises:
        DecodeError: No object could be decoded, or the decoded value is not
            an object.
    """
    stripped = text.strip()
    try:
        decoded = json.loads(stripped)
    except (json.JSONDecodeError, ValueError, RecursionError):
        candidate = find_balanced_object(stripped)
        if candidate is None:
            raise DecodeError("No JSON object found in model response.")
        try:
            decoded = json.loads(candidate)
        except (json.JSONDecodeError, ValueError, RecursionError) as exc:
            logger.debug("json_extract_candidate_invalid", error=str(exc))
            raise DecodeError("Malformed JSON object in model response.") from exc

    if not isinstance(decoded, dict):
        raise DecodeError("Model response is not a JSON object.")
    return decoded
