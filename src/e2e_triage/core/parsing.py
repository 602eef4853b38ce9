"""Helpers for pulling structured data out of generated text.

Generators asked for JSON usually return exactly that, but some wrap the
object in prose or a markdown fence. Decoding first tries the whole text,
then falls back to the first balanced ``{...}`` span.
"""

from __future__ import annotations

import json
from typing import Any


def extract_json_object(text: str) -> str | None:
    """
    Find the first balanced ``{...}`` span in text.

    Braces inside JSON string literals are ignored, so a ``}`` in a code
    snippet does not end the object early.

    Args:
        text: Raw generated text.

    Returns:
        The span including both braces, or None if no balanced span exists.
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
                return text[start : index + 1]

    return None


def parse_json_payload(text: str) -> dict[str, Any] | None:
    """
    Decode a JSON object from generated text.

    Args:
        text: Raw generated text.

    Returns:
        The decoded object, or None if no JSON object could be decoded.
    """
    candidate = text.strip()
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        payload = None

    if isinstance(payload, dict):
        return payload

    span = extract_json_object(candidate)
    if span is None:
        return None
    try:
        payload = json.loads(span)
    except json.JSONDecodeError:
        return None

    return payload if isinstance(payload, dict) else None
