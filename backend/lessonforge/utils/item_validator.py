"""item_validator.py: deterministic checks on generated items (no LLM).

Runs after reconciliation and before the agent stage. Item indexes in the
outcome refer to positions in the list passed in (selection items first,
then open items). Errors mark an item for removal; warnings are reported
only.

Checks, per item:
  schema        → pydantic shape of the item's ``type`` (SCHEMA_INVALID)
  single_choice → index bounds, empty/duplicate options, 3-option warning
  multiple_choice → index bounds, duplicate indices, empty/duplicate options
  open_question → empty question or answer
  matching      → column lengths, pair count, pair bounds, duplicate pairs/entries
  fill_blank    → ___(n)___ markers vs blanks, empty blank answers
  all           → duplicate question text across items, question too short
  math subjects → numbers above the grade limit (one warning per item)
"""
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from lessonforge.models.items import ITEM_ADAPTER, SELECTION_TYPES, OPEN_TYPES, TrackedItem

SCHEMA_INVALID = "SCHEMA_INVALID"
INVALID_INDEX = "INVALID_INDEX"
EMPTY_FIELD = "EMPTY_FIELD"
DUPLICATE_OPTIONS = "DUPLICATE_OPTIONS"
FEW_OPTIONS = "FEW_OPTIONS"
DUPLICATE_INDICES = "DUPLICATE_INDICES"
COLUMN_LENGTH_MISMATCH = "COLUMN_LENGTH_MISMATCH"
INCOMPLETE_PAIRS = "INCOMPLETE_PAIRS"
INVALID_PAIR_INDEX = "INVALID_PAIR_INDEX"
DUPLICATE_PAIRS = "DUPLICATE_PAIRS"
BLANK_MARKER_MISMATCH = "BLANK_MARKER_MISMATCH"
MISSING_BLANK = "MISSING_BLANK"
DUPLICATE_QUESTIONS = "DUPLICATE_QUESTIONS"
QUESTION_TOO_SHORT = "QUESTION_TOO_SHORT"
POSSIBLE_NUMBER_OVERFLOW = "POSSIBLE_NUMBER_OVERFLOW"

MIN_QUESTION_LENGTH = 10
MATH_SUBJECTS = frozenset({"math", "algebra", "geometry"})
# Largest number expected in a task, by grade. No limit from grade 5 on.
MAX_NUMBER_BY_GRADE = {1: 20, 2: 100, 3: 1000, 4: 1_000_000}

_BLANK_MARKER_RE = re.compile(r"___\((\d+)\)___")
_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


@dataclass(frozen=True)
class ValidationIssue:
    item_index: int
    field: str
    code: str
    message: str


@dataclass
class ValidationOutcome:
    errors: list = field(default_factory=list)     # ValidationIssue, item is removed
    warnings: list = field(default_factory=list)   # ValidationIssue, reported only

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error_indices(self) -> set[int]:
        return {issue.item_index for issue in self.errors}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _question_text(item: dict) -> str:
    kind = item.get("type")
    if kind in ("single_choice", "multiple_choice", "open_question"):
        return _text(item.get("question"))
    if kind == "matching":
        return _text(item.get("instruction"))
    if kind == "fill_blank":
        return _text(item.get("textWithBlanks"))
    return ""


def _gather_text(item: dict) -> str:
    parts = [_text(item.get("question")), _text(item.get("correctAnswer")),
             _text(item.get("instruction")), _text(item.get("textWithBlanks"))]
    for key in ("options", "leftColumn", "rightColumn"):
        parts.extend(_text(v) for v in _as_list(item.get(key)))
    for blank in _as_list(item.get("blanks")):
        if isinstance(blank, dict):
            parts.append(_text(blank.get("correctAnswer")))
    return " ".join(p for p in parts if p)


def _extract_numbers(text: str) -> list[float]:
    return [float(m.replace(",", ".")) for m in _NUMBER_RE.findall(text)]


def _check_duplicates(values: list, index: int, errors: list, field_name: str = "options") -> None:
    seen = set()
    for value in values:
        normalized = _text(value).strip().lower()
        if normalized and normalized in seen:
            errors.append(ValidationIssue(index, field_name, DUPLICATE_OPTIONS,
                                          f"Duplicate entry: {value!r}"))
        if normalized:
            seen.add(normalized)


def _check_empty_options(options: list, index: int, errors: list) -> None:
    for j, option in enumerate(options):
        if not _text(option).strip():
            errors.append(ValidationIssue(index, f"options[{j}]", EMPTY_FIELD, "Empty answer option"))


# ---------------------------------------------------------------------------
# Per-type checks
# ---------------------------------------------------------------------------

def _validate_schema(item: dict, index: int, errors: list) -> None:
    kind = item.get("type")
    if kind not in SELECTION_TYPES and kind not in OPEN_TYPES:
        errors.append(ValidationIssue(index, "type", SCHEMA_INVALID, f"Unknown task type: {kind!r}"))
        return
    try:
        ITEM_ADAPTER.validate_python(item)
    except ValidationError as exc:
        for err in exc.errors():
            # loc starts with the union tag, e.g. ("single_choice", "options", 2)
            loc = [str(part) for part in err["loc"][1:]]
            errors.append(ValidationIssue(index, ".".join(loc) or "root", SCHEMA_INVALID, err["msg"]))


def _validate_single_choice(item: dict, index: int, errors: list, warnings: list) -> None:
    options = _as_list(item.get("options"))
    correct = item.get("correctIndex")
    if _is_int(correct) and not 0 <= correct < len(options):
        errors.append(ValidationIssue(index, "correctIndex", INVALID_INDEX,
                                      f"correctIndex ({correct}) out of range [0, {len(options) - 1}]"))
    _check_empty_options(options, index, errors)
    _check_duplicates(options, index, errors)
    if len(options) == 3:
        warnings.append(ValidationIssue(index, "options", FEW_OPTIONS,
                                        "Only 3 answer options (4 recommended)"))


def _validate_multiple_choice(item: dict, index: int, errors: list) -> None:
    options = _as_list(item.get("options"))
    indices = [i for i in _as_list(item.get("correctIndices")) if _is_int(i)]
    for idx in indices:
        if not 0 <= idx < len(options):
            errors.append(ValidationIssue(index, "correctIndices", INVALID_INDEX,
                                          f"correctIndices has {idx}, out of range [0, {len(options) - 1}]"))
    if len(set(indices)) != len(indices):
        errors.append(ValidationIssue(index, "correctIndices", DUPLICATE_INDICES,
                                      "Duplicate values in correctIndices"))
    _check_empty_options(options, index, errors)
    _check_duplicates(options, index, errors)


def _validate_open_question(item: dict, index: int, errors: list) -> None:
    if not _text(item.get("correctAnswer")).strip():
        errors.append(ValidationIssue(index, "correctAnswer", EMPTY_FIELD, "Empty correct answer"))
    if not _text(item.get("question")).strip():
        errors.append(ValidationIssue(index, "question", EMPTY_FIELD, "Empty question"))


def _validate_matching(item: dict, index: int, errors: list) -> None:
    left = _as_list(item.get("leftColumn"))
    right = _as_list(item.get("rightColumn"))
    pairs = _as_list(item.get("correctPairs"))

    if len(left) != len(right):
        errors.append(ValidationIssue(index, "leftColumn/rightColumn", COLUMN_LENGTH_MISMATCH,
                                      f"Column lengths differ: left={len(left)}, right={len(right)}"))
    if len(pairs) != len(left):
        errors.append(ValidationIssue(index, "correctPairs", INCOMPLETE_PAIRS,
                                      f"{len(pairs)} pairs for {len(left)} left items"))

    used_left, used_right = set(), set()
    for pair in pairs:
        if not (isinstance(pair, (list, tuple)) and len(pair) == 2 and _is_int(pair[0]) and _is_int(pair[1])):
            continue  # reported by the schema check
        l, r = pair
        if not 0 <= l < len(left):
            errors.append(ValidationIssue(index, "correctPairs", INVALID_PAIR_INDEX,
                                          f"Left index {l} out of range [0, {len(left) - 1}]"))
        if not 0 <= r < len(right):
            errors.append(ValidationIssue(index, "correctPairs", INVALID_PAIR_INDEX,
                                          f"Right index {r} out of range [0, {len(right) - 1}]"))
        if l in used_left:
            errors.append(ValidationIssue(index, "correctPairs", DUPLICATE_PAIRS, f"Left index {l} used twice"))
        if r in used_right:
            errors.append(ValidationIssue(index, "correctPairs", DUPLICATE_PAIRS, f"Right index {r} used twice"))
        used_left.add(l)
        used_right.add(r)

    _check_duplicates(left, index, errors, "leftColumn")
    _check_duplicates(right, index, errors, "rightColumn")


def _validate_fill_blank(item: dict, index: int, errors: list) -> None:
    text = _text(item.get("textWithBlanks"))
    blanks = [b for b in _as_list(item.get("blanks")) if isinstance(b, dict)]
    markers = {int(m) for m in _BLANK_MARKER_RE.findall(text)}

    if len(markers) != len(blanks):
        errors.append(ValidationIssue(index, "textWithBlanks/blanks", BLANK_MARKER_MISMATCH,
                                      f"{len(markers)} markers in text, {len(blanks)} blanks"))

    positions = set()
    for blank in blanks:
        position = blank.get("position")
        if _is_int(position):
            positions.add(position)
        if not _is_int(position) or position not in markers:
            errors.append(ValidationIssue(index, f"blanks[{position}]", MISSING_BLANK,
                                          f"Marker ___({position})___ not found in text"))
        if not _text(blank.get("correctAnswer")).strip():
            errors.append(ValidationIssue(index, f"blanks[{position}].correctAnswer", EMPTY_FIELD,
                                          "Empty answer for a blank"))
    for marker in sorted(markers - positions):
        errors.append(ValidationIssue(index, "blanks", MISSING_BLANK,
                                      f"No blank object for marker ___({marker})___"))


def _validate_math_numbers(items: list[dict], grade: int, warnings: list) -> None:
    max_number = MAX_NUMBER_BY_GRADE.get(grade)
    if max_number is None:
        return
    for i, item in enumerate(items):
        for number in _extract_numbers(_gather_text(item)):
            if abs(number) > max_number:
                warnings.append(ValidationIssue(i, "content", POSSIBLE_NUMBER_OVERFLOW,
                                                f"Number {number:g} exceeds the grade {grade} limit ({max_number})"))
                break


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def validate_items(items: list, subject: str, grade: int) -> ValidationOutcome:
    """Run every deterministic check over ``items`` (dicts or TrackedItems)."""
    payloads = [item.payload if isinstance(item, TrackedItem) else item for item in items]
    payloads = [p if isinstance(p, dict) else {} for p in payloads]
    outcome = ValidationOutcome()
    errors, warnings = outcome.errors, outcome.warnings
    seen_questions: set[str] = set()

    for i, item in enumerate(payloads):
        _validate_schema(item, i, errors)

        kind = item.get("type")
        if kind == "single_choice":
            _validate_single_choice(item, i, errors, warnings)
        elif kind == "multiple_choice":
            _validate_multiple_choice(item, i, errors)
        elif kind == "open_question":
            _validate_open_question(item, i, errors)
        elif kind == "matching":
            _validate_matching(item, i, errors)
        elif kind == "fill_blank":
            _validate_fill_blank(item, i, errors)

        question = _question_text(item).strip()
        normalized = question.lower()
        if len(normalized) >= MIN_QUESTION_LENGTH:
            if normalized in seen_questions:
                errors.append(ValidationIssue(i, "question", DUPLICATE_QUESTIONS,
                                              f"Duplicate question: {question[:50]!r}"))
            else:
                seen_questions.add(normalized)
        if 0 < len(question) < MIN_QUESTION_LENGTH:
            errors.append(ValidationIssue(i, "question", QUESTION_TOO_SHORT,
                                          f"Question too short ({len(question)} chars, minimum {MIN_QUESTION_LENGTH})"))

    if subject in MATH_SUBJECTS:
        _validate_math_numbers(payloads, grade, warnings)

    return outcome
