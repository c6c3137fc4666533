"""
JSON Utilities for LLM Response Parsing.

Models are told to answer with JSON only, but they wrap it in prose, code
fences, or emit several objects in a row. This module finds the first
syntactically balanced JSON object in such a reply.

Uses json-repair as a fallback when a balanced span is not strict JSON
(single quotes, trailing commas, unquoted keys).
"""

import json
import logging
from typing import Any, Dict, Iterator, Optional, Tuple

from json_repair import repair_json

logger = logging.getLogger(__name__)


def parse_llm_json(text: str) -> Dict[str, Any]:
    """
    Parse the first JSON object from an LLM response.

    Handles common LLM output issues:
    - Markdown code blocks (```json ... ```)
    - JSON embedded in surrounding text
    - Several sibling objects (only the first is returned)
    - Braces inside string values
    - Single quotes, trailing commas, unquoted keys (via json-repair)

    Truncated output (an object that never closes) is not repaired: a
    partially-populated object must not pass for a complete one.

    Args:
        text: Raw LLM response text that may contain JSON

    Returns:
        Parsed dictionary from the first balanced object

    Raises:
        ValueError: If no JSON object can be extracted or repaired

    Example:
        >>> parse_llm_json('Sure! ```json\\n{"fullName": "A"}\\n```')
        {'fullName': 'A'}
        >>> parse_llm_json('{"a": 1} {"b": 2}')
        {'a': 1}
    """
    if not text or not text.strip():
        raise ValueError("Empty input: no JSON content to parse")

    found_span = False
    for start, end in _iter_balanced_spans(text):
        found_span = True
        candidate = text[start:end]
        parsed = _loads_object(candidate)
        if parsed is not None:
            return parsed
        logger.debug(f"Balanced span at offset {start} is not valid JSON, trying next")

    if found_span:
        raise ValueError(f"Failed to parse or repair JSON: {text[:200]}")
    raise ValueError(f"No JSON object found in text: {text[:200]}")


def extract_first_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the first parseable JSON object in ``text``, or None.

    Non-raising counterpart of parse_llm_json for call sites that want a
    "not parseable" signal instead of an exception.
    """
    if not text:
        return None
    try:
        return parse_llm_json(text)
    except ValueError as e:
        logger.debug(f"No JSON object extracted: {e}")
        return None


def find_balanced_object(text: str, start: int = 0) -> Optional[Tuple[int, int]]:
    """
    Locate the first balanced ``{...}`` span at or after ``start``.

    Tracks double-quoted string state and backslash escapes so that braces
    inside string values do not affect nesting depth.

    Returns:
        (start, end) slice bounds, or None if no object closes
    """
    open_at = text.find("{", start)
    if open_at == -1:
        return None

    # Unterminated from here: any later '{' is nested inside a truncated object
    end = _scan_object(text, open_at)
    if end is None:
        return None
    return open_at, end


def _iter_balanced_spans(text: str) -> Iterator[Tuple[int, int]]:
    """Yield balanced object spans left to right, skipping nested ones."""
    position = 0
    while True:
        span = find_balanced_object(text, position)
        if span is None:
            return
        yield span
        # A span that failed to parse may still contain a valid object
        position = span[0] + 1


def _scan_object(text: str, open_at: int) -> Optional[int]:
    """Return the index just past the brace closing ``text[open_at]``."""
    depth = 0
    in_string = False
    escaped = False

    for index in range(open_at, len(text)):
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
                return index + 1

    return None


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    """Parse a candidate span strictly, then with json-repair."""
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        parsed = _repair(candidate)

    if isinstance(parsed, dict):
        return parsed
    return None


def _repair(candidate: str) -> Any:
    """Run json-repair on a malformed but balanced span."""
    try:
        repaired = repair_json(candidate, return_objects=True)
    except Exception as e:
        logger.debug(f"json_repair failed: {e}")
        return None

    # repair_json returns "" when it cannot make sense of the input
    if isinstance(repaired, str):
        try:
            return json.loads(repaired) if repaired else None
        except json.JSONDecodeError:
            return None
    return repaired
