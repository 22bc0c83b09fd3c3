"""Clean free text (topics, custom themes) before it is embedded in a prompt."""
import re

_CONTROL_CHARS_RE = re.compile(r"[\r\n\t\x00-\x1f\x7f]")
_DELIMITER_RES = (
    re.compile(r"-{3,}"),
    re.compile(r"={3,}"),
    re.compile(r"#{2,}"),
)
_INJECTION_RES = (
    re.compile(r"ignore\s+(all\s+)?previous\s+instructions?", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?previous", re.IGNORECASE),
    re.compile(r"forget\s+(all\s+)?previous", re.IGNORECASE),
    re.compile(r"игнорируй\s+(все\s+)?предыдущие", re.IGNORECASE),
    re.compile(r"забудь\s+(все\s+)?предыдущие", re.IGNORECASE),
    re.compile(r"не\s+обращай\s+внимания\s+на\s+предыдущие", re.IGNORECASE),
    re.compile(r"\bsystem\s*:", re.IGNORECASE),
    re.compile(r"\bassistant\s*:", re.IGNORECASE),
    re.compile(r"\buser\s*:", re.IGNORECASE),
)
_WHITESPACE_RUN_RE = re.compile(r"\s{2,}")


def sanitize_user_input(text: str | None) -> str:
    """Strip control characters, prompt delimiters and injection phrases.

    The result is a single line with collapsed whitespace. ``None`` becomes "".
    """
    if not text:
        return ""
    cleaned = _CONTROL_CHARS_RE.sub(" ", text)
    for pattern in _DELIMITER_RES:
        cleaned = pattern.sub("", cleaned)
    for pattern in _INJECTION_RES:
        cleaned = pattern.sub("", cleaned)
    return _WHITESPACE_RUN_RE.sub(" ", cleaned).strip()
