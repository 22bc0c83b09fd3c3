from dataclasses import dataclass
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

Subject = Literal["math", "algebra", "geometry", "russian"]
Difficulty = Literal["easy", "medium", "hard"]
WorksheetFormatId = Literal["open_only", "test_only", "test_and_open"]
TaskTypeId = Literal["single_choice", "multiple_choice", "open_question", "matching", "fill_blank"]


class GenerationRequest(BaseModel):
    """Input of one worksheet orchestration. Never mutated once built."""

    model_config = ConfigDict(frozen=True)

    subject: Subject
    grade: int = Field(ge=1, le=11)
    topic: str = Field(min_length=3, max_length=200)
    difficulty: Difficulty = "medium"
    format: WorksheetFormatId = "test_and_open"
    variant_index: int = Field(default=0, ge=0, le=2)
    task_types: Annotated[tuple[TaskTypeId, ...], Field(min_length=1, max_length=5)] | None = None
    is_paid: bool = False


class PresentationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: Subject
    grade: int = Field(ge=1, le=11)
    topic: str = Field(min_length=3, max_length=200)
    theme_type: Literal["preset", "custom"] = "preset"
    theme_preset: str | None = None
    theme_custom: str | None = Field(default=None, max_length=500)
    slide_count: Literal[12, 18, 24] = 18
    is_paid: bool = False


class RegenerateItemRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: Subject
    grade: int = Field(ge=1, le=11)
    topic: str = Field(min_length=3, max_length=200)
    difficulty: Difficulty = "medium"
    task_type: TaskTypeId
    is_test: bool = False
    is_paid: bool = False


@dataclass(frozen=True)
class TargetCounts:
    """Requested number of items per family."""

    open_count: int
    selection_count: int

    def __post_init__(self) -> None:
        if self.open_count < 0 or self.selection_count < 0:
            raise ValueError("target counts must be non-negative")

    @property
    def total(self) -> int:
        return self.open_count + self.selection_count


@dataclass(frozen=True)
class GenerationContext:
    """Context handed to the agent validator and the fixer."""

    subject: str
    grade: int
    topic: str
    difficulty: str = "medium"
