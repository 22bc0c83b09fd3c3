"""Shapes of the items the model generates.

Items travel through the pipeline as the plain dicts the model wrote
(camelCase keys). The pydantic models below describe the expected shape of
each ``type`` and are used by the deterministic validator only.
"""
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

SELECTION_TYPES: frozenset[str] = frozenset({"single_choice", "multiple_choice"})
OPEN_TYPES: frozenset[str] = frozenset({"open_question", "matching", "fill_blank"})


class _ItemBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    explanation: str | None = None


class SingleChoiceItem(_ItemBase):
    type: Literal["single_choice"]
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=2)
    correct_index: int = Field(alias="correctIndex", ge=0)


class MultipleChoiceItem(_ItemBase):
    type: Literal["multiple_choice"]
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=2)
    correct_indices: list[int] = Field(alias="correctIndices", min_length=1)


class OpenQuestionItem(_ItemBase):
    type: Literal["open_question"]
    question: str = Field(min_length=1)
    correct_answer: str = Field(alias="correctAnswer")
    acceptable_variants: list[str] | None = Field(default=None, alias="acceptableVariants")


class MatchingItem(_ItemBase):
    type: Literal["matching"]
    instruction: str = Field(min_length=1)
    left_column: list[str] = Field(alias="leftColumn", min_length=2)
    right_column: list[str] = Field(alias="rightColumn", min_length=2)
    correct_pairs: list[tuple[int, int]] = Field(alias="correctPairs", min_length=1)


class Blank(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    position: int
    correct_answer: str = Field(alias="correctAnswer")
    acceptable_variants: list[str] | None = Field(default=None, alias="acceptableVariants")


class FillBlankItem(_ItemBase):
    type: Literal["fill_blank"]
    text_with_blanks: str = Field(alias="textWithBlanks", min_length=1)
    blanks: list[Blank] = Field(min_length=1)


GeneratedItem = Annotated[
    Union[SingleChoiceItem, MultipleChoiceItem, OpenQuestionItem, MatchingItem, FillBlankItem],
    Field(discriminator="type"),
]

ITEM_ADAPTER: TypeAdapter = TypeAdapter(GeneratedItem)


@dataclass(frozen=True)
class TrackedItem:
    """A generated item with the ordinal it received at generation time.

    Ordinals are unique within one orchestration and follow generation order
    (initial call first, then each backfill round), so removals after
    validation never depend on list offsets.
    """

    ordinal: int
    payload: dict[str, Any]

    @property
    def type(self) -> str:
        return item_type(self.payload)


def item_type(item: Any) -> str:
    """Return the ``type`` tag of a raw dict or a TrackedItem ("" if absent)."""
    if isinstance(item, TrackedItem):
        item = item.payload
    if not isinstance(item, dict):
        return ""
    value = item.get("type")
    return value if isinstance(value, str) else ""


def is_selection(item: Any) -> bool:
    return item_type(item) in SELECTION_TYPES
