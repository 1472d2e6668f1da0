"""JSON recovery for LLM responses.

Models sometimes wrap JSON in markdown fences, add prose around it, or stop
mid-object when they hit the output limit. parse_json_response() tries the
raw text first and only then progressively more invasive repairs.
"""
import json
import logging

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    stripped = text.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else stripped[3:]
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def _scan(text: str):
    """Yield (index, char) for structural characters outside string literals."""
    in_string = False
    escaped = False
    for i, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if not in_string and char in "{}[]":
            yield i, char


def extract_json_object(text: str) -> str:
    """Return the first balanced {...} block, or the input unchanged."""
    depth = 0
    start = -1
    for i, char in _scan(text):
        if char == "{":
            if start == -1:
                start = i
            depth += 1
        elif char == "}" and start != -1:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:] if start != -1 else text


def close_truncated_json(text: str) -> str:
    """Close an unterminated string and any brackets/braces left open."""
    stack = []
    for _, char in _scan(text):
        if char in "{[":
            stack.append("}" if char == "{" else "]")
        elif stack:
            stack.pop()

    # An odd number of unescaped quotes means we stopped inside a string
    quotes = 0
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            quotes += 1
    repaired = text.rstrip().rstrip(",")
    if quotes % 2:
        repaired += '"'
    return repaired + "".join(reversed(stack))


def parse_json_response(text: str) -> dict:
    """Parse an LLM response into a dict, repairing it if needed.

    Raises ValueError when nothing parseable can be recovered.
    """
    if text is None:
        raise ValueError("Empty LLM response")

    candidate = strip_code_fences(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    candidate = extract_json_object(candidate)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    try:
        result = json.loads(close_truncated_json(candidate))
        logger.warning("Repaired truncated JSON response")
        return result
    except json.JSONDecodeError as e:
        logger.error("Failed to parse JSON response: %s", text[:500])
        raise ValueError(f"Invalid JSON in response: {e}") from e
