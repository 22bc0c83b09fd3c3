"""Artifact Assembler: turn validated items into the Worksheet the client renders.

Answers are derived deterministically from each item's own fields. Malformed
references (index out of range, unresolvable pair) fall back to a safe value
and are logged; nothing here raises on bad model data.
"""
import json
import logging
import string
from typing import Any

from lessonforge.models.generation import GenerationRequest, TargetCounts
from lessonforge.models.items import TrackedItem, item_type
from lessonforge.models.worksheet import (
    Assignment,
    RegeneratedItem,
    TestQuestion,
    Worksheet,
    WorksheetAnswers,
)

logger = logging.getLogger("lessonforge.assembler")

DEFAULT_MATCHING_INSTRUCTION = "Match the items"
MATCHING_MARKER = "<!--MATCHING:{}-->"


def _payload(item: Any) -> dict:
    if isinstance(item, TrackedItem):
        return item.payload
    return item if isinstance(item, dict) else {}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v if isinstance(v, str) else str(v) for v in value]


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


# ──────────────────────────────────────────────
# Answer derivation
# ──────────────────────────────────────────────

def _single_choice_answer(item: dict) -> str:
    options = _strings(item.get("options"))
    if not options:
        return ""
    idx = item.get("correctIndex")
    if not _is_int(idx):
        logger.warning("[assembler] single_choice without a usable correctIndex (%r), using option 0", idx)
        return options[0]
    if not 0 <= idx < len(options):
        logger.warning("[assembler] single_choice correctIndex %d out of range (%d options), using option 0",
                       idx, len(options))
        return options[0]
    return options[idx]


def _multiple_choice_answer(item: dict) -> str:
    options = _strings(item.get("options"))
    indices = item.get("correctIndices")
    if not isinstance(indices, list):
        indices = [0]
    valid = [i for i in indices if _is_int(i) and 0 <= i < len(options)]
    if len(valid) != len(indices):
        dropped = [i for i in indices if i not in valid]
        logger.warning("[assembler] multiple_choice correctIndices %s out of range (%d options)", dropped, len(options))
    return ", ".join(options[i] for i in valid)


def _matching_answer(item: dict) -> str:
    left = item.get("leftColumn") if isinstance(item.get("leftColumn"), list) else []
    right = item.get("rightColumn") if isinstance(item.get("rightColumn"), list) else []
    pairs = item.get("correctPairs") if isinstance(item.get("correctPairs"), list) else []
    rendered = []
    for pair in pairs:
        if (
            isinstance(pair, (list, tuple)) and len(pair) == 2
            and _is_int(pair[0]) and _is_int(pair[1])
            and 0 <= pair[0] < len(left) and 0 <= pair[1] < len(right)
            and pair[1] < len(string.ascii_uppercase)
        ):
            rendered.append(f"{pair[0] + 1}-{string.ascii_uppercase[pair[1]]}")
        else:
            logger.warning("[assembler] matching pair %r does not resolve, skipped", pair)
    return ", ".join(rendered)


def _fill_blank_answer(item: dict) -> str:
    blanks = item.get("blanks") if isinstance(item.get("blanks"), list) else []
    rendered = []
    for blank in blanks:
        if not isinstance(blank, dict):
            continue
        position = blank.get("position")
        if not _is_int(position):
            logger.warning("[assembler] fill_blank blank without a usable position (%r), skipped", position)
            continue
        rendered.append(f"({position}) {_text(blank.get('correctAnswer'))}")
    return "; ".join(rendered)


_ANSWER_RULES = {
    "single_choice": _single_choice_answer,
    "multiple_choice": _multiple_choice_answer,
    "open_question": lambda item: _text(item.get("correctAnswer")),
    "matching": _matching_answer,
    "fill_blank": _fill_blank_answer,
}


def derive_answer(item: Any) -> str:
    """Human-readable answer of one item; "" when nothing usable is present."""
    payload = _payload(item)
    rule = _ANSWER_RULES.get(item_type(payload))
    if rule is None:
        return _text(payload.get("correctAnswer"))
    return rule(payload)


# ──────────────────────────────────────────────
# Rendering
# ──────────────────────────────────────────────

def render_assignment_text(item: Any) -> str:
    payload = _payload(item)
    kind = item_type(payload)
    if kind == "matching":
        data = {
            "type": "matching",
            "instruction": _text(payload.get("instruction")) or DEFAULT_MATCHING_INSTRUCTION,
            "leftColumn": _strings(payload.get("leftColumn")),
            "rightColumn": _strings(payload.get("rightColumn")),
        }
        return MATCHING_MARKER.format(json.dumps(data, ensure_ascii=False))
    if kind == "fill_blank":
        return _text(payload.get("textWithBlanks"))
    return _text(payload.get("question"))


def render_test_question(item: Any) -> TestQuestion:
    payload = _payload(item)
    return TestQuestion(
        question=_text(payload.get("question")),
        options=_strings(payload.get("options")),
        answer=derive_answer(payload),
    )


def assemble_worksheet(
    selection_items: list,
    open_items: list,
    request: GenerationRequest,
    targets: TargetCounts,
) -> Worksheet:
    """Build the Worksheet, truncating each family to its target count."""
    selection_items = list(selection_items)[: targets.selection_count]
    open_items = list(open_items)[: targets.open_count]

    test_questions = [render_test_question(item) for item in selection_items]
    assignments = [
        Assignment(title=f"Task {i + 1}", text=render_assignment_text(item))
        for i, item in enumerate(open_items)
    ]
    assignment_answers = [derive_answer(item) for item in open_items]

    for i, answer in enumerate(assignment_answers):
        if not answer:
            logger.warning("[assembler] empty answer for open task %d (type=%s)", i, item_type(open_items[i]))
    for i, question in enumerate(test_questions):
        if not question.answer:
            logger.warning("[assembler] empty answer for test question %d (type=%s)", i, item_type(selection_items[i]))

    return Worksheet(
        subject=request.subject,
        grade=request.grade,
        topic=request.topic,
        assignments=assignments,
        test_questions=test_questions,
        answers=WorksheetAnswers(
            assignment_answers=assignment_answers,
            test_answers=[q.answer for q in test_questions],
        ),
    )


def convert_single_item(item: Any, is_test: bool) -> RegeneratedItem:
    """Shape one regenerated item as a test question or an assignment."""
    answer = derive_answer(item)
    if not answer:
        logger.warning("[assembler] regenerated item has an empty answer (type=%s)", item_type(item))
    if is_test:
        return RegeneratedItem(test_question=render_test_question(item), answer=answer)
    return RegeneratedItem(
        assignment=Assignment(title="Task", text=render_assignment_text(item)),
        answer=answer,
    )
