"""Response Extractor: pull the JSON payload out of free-form model text.

Models wrap their JSON in prose, markdown fences or both. The scan below
finds balanced ``{...}`` spans while respecting string literals and escapes,
so braces inside strings (``"f(x) = {x}"``) never end an object early.
"""
import json
import logging
import re
from typing import Any

from lessonforge.core.errors import ParseError

logger = logging.getLogger("lessonforge.extractor")

# Valid JSON escapes: \" \\ \/ \b \f \n \r \t \uXXXX. Anything else (\( \^ ...) loses its backslash.
_INVALID_ESCAPE_RE = re.compile(r'\\(?!["\\/bfnrtu])')


def strip_invalid_escapes(text: str) -> str:
    return _INVALID_ESCAPE_RE.sub("", text)


def _match_object(text: str, start: int) -> int | None:
    """Index just past the object opened at ``text[start]``, or None if it never closes."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json(raw: str | None, *, lenient: bool = False) -> dict[str, Any]:
    """Return the JSON object that starts at the first ``{`` in ``raw``.

    Only that one balanced candidate is decoded; objects nested inside it are
    never tried on their own. With ``lenient=True`` a candidate that fails to
    decode is retried once with invalid backslash escapes removed.

    Raises ParseError when the candidate is unbalanced, does not decode, or
    decodes to something other than an object.
    """
    if not raw:
        raise ParseError("empty model response")

    start = raw.find("{")
    if start == -1:
        raise ParseError("no JSON object in model response")

    end = _match_object(raw, start)
    if end is None:
        raise ParseError("unbalanced JSON object in model response")
    candidate = raw[start:end]

    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as exc:
        if not lenient:
            raise ParseError(f"model response is not valid JSON: {exc}") from exc
        try:
            value = json.loads(strip_invalid_escapes(candidate))
        except json.JSONDecodeError as retry_exc:
            raise ParseError(f"model response is not valid JSON: {retry_exc}") from retry_exc
        logger.warning("[extractor] sanitized invalid escape sequences in JSON")

    if not isinstance(value, dict):
        raise ParseError("model response JSON is not an object")
    return value


def extract_items(payload: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Return the dict entries of ``payload["tasks"]``; anything else is dropped."""
    if not isinstance(payload, dict):
        return []
    tasks = payload.get("tasks")
    if not isinstance(tasks, list):
        if tasks is not None:
            logger.warning("[extractor] 'tasks' is %s, expected a list", type(tasks).__name__)
        return []
    items = [task for task in tasks if isinstance(task, dict)]
    if len(items) != len(tasks):
        logger.warning("[extractor] dropped %d non-object entries from 'tasks'", len(tasks) - len(items))
    return items
