"""Registry of the item types the generator can ask for.

Each entry carries the prompt instruction used in the main generation prompt
and the one-line JSON example embedded in backfill prompts to keep the model
on the expected shape.
"""
from dataclasses import dataclass
from typing import Literal

Family = Literal["selection", "open"]


@dataclass(frozen=True)
class TaskTypeConfig:
    id: str
    name: str
    family: Family
    prompt_instruction: str
    json_example: str


TASK_TYPES: dict[str, TaskTypeConfig] = {
    "single_choice": TaskTypeConfig(
        id="single_choice",
        name="Single choice",
        family="selection",
        prompt_instruction=(
            "A question with exactly 4 options and ONE correct option. "
            "Distractors must be plausible (typical student mistakes). "
            "correctIndex is the 0-based index of the correct option."
        ),
        json_example=(
            '{"type":"single_choice","question":"...","options":["A","B","C","D"],'
            '"correctIndex":0,"explanation":"..."}'
        ),
    ),
    "multiple_choice": TaskTypeConfig(
        id="multiple_choice",
        name="Multiple choice",
        family="selection",
        prompt_instruction=(
            "A question with 4-5 options and 2-3 correct options. "
            "correctIndices lists the 0-based indices of every correct option."
        ),
        json_example=(
            '{"type":"multiple_choice","question":"...","options":["A","B","C","D"],'
            '"correctIndices":[0,2],"explanation":"..."}'
        ),
    ),
    "open_question": TaskTypeConfig(
        id="open_question",
        name="Open question",
        family="open",
        prompt_instruction=(
            "A task with a short free-form answer (a number, a word or a phrase). "
            "correctAnswer holds the reference answer."
        ),
        json_example='{"type":"open_question","question":"...","correctAnswer":"..."}',
    ),
    "matching": TaskTypeConfig(
        id="matching",
        name="Matching",
        family="open",
        prompt_instruction=(
            "Two columns of 4-5 items each. correctPairs lists [leftIndex, rightIndex] "
            "pairs (0-based), one pair per left item. Shuffle the right column."
        ),
        json_example=(
            '{"type":"matching","instruction":"...","leftColumn":["..."],'
            '"rightColumn":["..."],"correctPairs":[[0,1],[1,0]]}'
        ),
    ),
    "fill_blank": TaskTypeConfig(
        id="fill_blank",
        name="Fill in the blanks",
        family="open",
        prompt_instruction=(
            "A text with 2-4 gaps marked ___(1)___, ___(2)___ and so on. "
            "blanks lists every gap with its position number and correctAnswer."
        ),
        json_example=(
            '{"type":"fill_blank","textWithBlanks":"Text ___(1)___ ...",'
            '"blanks":[{"position":1,"correctAnswer":"..."}]}'
        ),
    ),
}

SELECTION_TYPE_IDS: tuple[str, ...] = ("single_choice", "multiple_choice")
OPEN_TYPE_IDS: tuple[str, ...] = ("open_question", "matching", "fill_blank")


def get_task_type(type_id: str) -> TaskTypeConfig:
    try:
        return TASK_TYPES[type_id]
    except KeyError:
        raise ValueError(f"Unknown task type: {type_id}") from None


def types_of_family(task_types, family: Family) -> list[str]:
    """Filter ``task_types`` down to one family, keeping order and dropping unknown ids."""
    return [t for t in task_types if t in TASK_TYPES and TASK_TYPES[t].family == family]
