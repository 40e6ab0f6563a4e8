"""
Helpers for pulling JSON out of LLM responses.

Models wrap JSON in markdown code fences, prefix it with prose, or return
confidences as strings. These helpers normalize all of that.
"""
import json
import re
from typing import Any, Optional

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*\n?([\s\S]*?)```")


def extract_json(content: str) -> str:
    """
    Extract the JSON payload from an LLM response.

    Handles ```json fences, bare ``` fences, a fence embedded in prose,
    and otherwise falls back to the outermost {...} block.

    Args:
        content: Raw LLM response text

    Returns:
        The JSON substring (may still be invalid JSON)
    """
    if not content:
        return ""

    cleaned = content.strip()

    fence = _FENCE_PATTERN.search(cleaned)
    if fence:
        return fence.group(1).strip()

    # Find JSON object in response
    json_match = re.search(r"\{[\s\S]*\}", cleaned)
    if json_match:
        return json_match.group(0)

    return cleaned


def parse_json_object(content: str) -> dict:
    """
    Parse an LLM response into a JSON object.

    Raises:
        ValueError: If no JSON object can be parsed (json.JSONDecodeError
            is a ValueError subclass)
    """
    data = json.loads(extract_json(content))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def try_parse_confidence(value: Any) -> Optional[float]:
    """Read a confidence from a number or numeric string, clamped to [0, 1]."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if number != number:  # NaN
        return None
    return min(1.0, max(0.0, number))
