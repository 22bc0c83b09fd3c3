from pydantic import BaseModel, ConfigDict, Field
from typing import Literal


class Assignment(BaseModel):
    title: str
    text: str


class TestQuestion(BaseModel):
    question: str
    options: list[str]
    answer: str


class WorksheetAnswers(BaseModel):
    assignment_answers: list[str]
    test_answers: list[str]


class Worksheet(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    grade: int
    topic: str
    assignments: list[Assignment]
    test_questions: list[TestQuestion]
    answers: WorksheetAnswers


class RegeneratedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    assignment: Assignment | None = None
    test_question: TestQuestion | None = None
    answer: str


SlideType = Literal[
    "title", "content", "twoColumn", "table", "example",
    "formula", "diagram", "chart", "practice", "conclusion",
]


class TableData(BaseModel):
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class ChartData(BaseModel):
    labels: list[str] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)


class Slide(BaseModel):
    type: SlideType = "content"
    title: str
    content: list[str] = Field(default_factory=list)
    left_column: list[str] | None = None
    right_column: list[str] | None = None
    table_data: TableData | None = None
    chart_data: ChartData | None = None


class Presentation(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    slides: list[Slide]
