"""Presentation normalization: coerce the model's slide JSON into Presentation.

Only a payload without a title or without slides is rejected. Everything
else is repaired in place: defaults for missing fields, unknown slide types
folded into "content", malformed table/chart/column data emptied, practice
answers split onto their own slide. Structural rules (slide count, title
first, conclusion last) are checked and returned as warnings.
"""
import logging
import re
from typing import Any

from lessonforge.core.errors import ParseError
from lessonforge.models.worksheet import ChartData, Presentation, Slide, TableData

logger = logging.getLogger("lessonforge.presentation")

VALID_SLIDE_TYPES = frozenset({
    "title", "content", "twoColumn", "table", "example",
    "formula", "diagram", "chart", "practice", "conclusion",
})
_ANSWER_LINE_RE = re.compile(r"^\s*(answers?|ответы?)\s*[:\-–]", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [v if isinstance(v, str) else str(v) for v in value if v is not None]
    return [str(value)]


def _non_empty(lines: list[str]) -> list[str]:
    return [line for line in lines if line.strip()]


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "."))
        except ValueError:
            return None
    return None


def _table(value: Any) -> TableData:
    if not isinstance(value, dict):
        return TableData()
    headers = _string_list(value.get("headers")) if isinstance(value.get("headers"), list) else []
    rows = value.get("rows") if isinstance(value.get("rows"), list) else []
    return TableData(headers=headers, rows=[_string_list(row) for row in rows if isinstance(row, list)])


def _chart(value: Any) -> ChartData:
    if not isinstance(value, dict):
        return ChartData()
    labels = _string_list(value.get("labels")) if isinstance(value.get("labels"), list) else []
    raw_values = value.get("values") if isinstance(value.get("values"), list) else []
    numbers = [n for n in (_number(v) for v in raw_values) if n is not None]
    return ChartData(labels=labels, values=numbers)


def _column(slide: dict, camel: str, snake: str) -> list[str] | None:
    value = slide.get(camel, slide.get(snake))
    if value is None:
        return None
    return _non_empty(_string_list(value)) if isinstance(value, list) else []


def normalize_slide(raw: Any, index: int) -> Slide:
    """Apply the per-slide defaults; never raises."""
    if not isinstance(raw, dict):
        logger.warning("[presentation] slide %d is %s, turned into a content slide", index, type(raw).__name__)
        raw = {"content": raw}

    slide_type = raw.get("type")
    if not isinstance(slide_type, str) or not slide_type:
        slide_type = "content"
    elif slide_type not in VALID_SLIDE_TYPES:
        logger.warning("[presentation] unknown slide type %r at %d, using content", slide_type, index)
        slide_type = "content"

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        title = f"Slide {index + 1}"

    table_raw = raw.get("tableData", raw.get("table_data"))
    chart_raw = raw.get("chartData", raw.get("chart_data"))
    return Slide(
        type=slide_type,
        title=title,
        content=_non_empty(_string_list(raw.get("content"))),
        left_column=_column(raw, "leftColumn", "left_column"),
        right_column=_column(raw, "rightColumn", "right_column"),
        table_data=_table(table_raw) if table_raw is not None else None,
        chart_data=_chart(chart_raw) if chart_raw is not None else None,
    )


# ---------------------------------------------------------------------------
# Deck-level post-processing
# ---------------------------------------------------------------------------

def _fold_incomplete(slide: Slide) -> Slide:
    """Turn table/twoColumn/chart slides without their data into content slides."""
    if slide.type == "table" and not (slide.table_data and slide.table_data.headers):
        rows = slide.table_data.rows if slide.table_data else []
        extra = [" | ".join(row) for row in rows if row]
        return slide.model_copy(update={"type": "content", "content": slide.content + extra})
    if slide.type == "twoColumn" and not (slide.left_column or slide.right_column):
        return slide.model_copy(update={"type": "content"})
    if slide.type == "chart" and not (slide.chart_data and slide.chart_data.labels and slide.chart_data.values):
        return slide.model_copy(update={"type": "content"})
    return slide


def _split_practice_answers(slides: list[Slide]) -> list[Slide]:
    out: list[Slide] = []
    for slide in slides:
        if slide.type != "practice":
            out.append(slide)
            continue
        answers = [line for line in slide.content if _ANSWER_LINE_RE.match(line)]
        if not answers:
            out.append(slide)
            continue
        tasks = [line for line in slide.content if not _ANSWER_LINE_RE.match(line)]
        out.append(slide.model_copy(update={"content": tasks}))
        out.append(Slide(type="content", title="Answers", content=answers))
    return out


def structure_warnings(slides: list[Slide], requested_count: int) -> list[str]:
    warnings = []
    if len(slides) != requested_count:
        warnings.append(f"slide count {len(slides)} differs from requested {requested_count}")
    if slides and slides[0].type != "title":
        warnings.append(f"first slide is {slides[0].type!r}, expected 'title'")
    if slides and slides[-1].type != "conclusion":
        warnings.append(f"last slide is {slides[-1].type!r}, expected 'conclusion'")
    return warnings


def normalize_presentation(payload: dict, requested_count: int) -> tuple[Presentation, list[str]]:
    """Return the normalized Presentation and its structural warnings.

    Raises ParseError when the payload has no title or no slides.
    """
    title = payload.get("title")
    raw_slides = payload.get("slides")
    if not isinstance(title, str) or not title.strip() or not isinstance(raw_slides, list) or not raw_slides:
        raise ParseError("presentation payload has no title or no slides")

    slides = [_fold_incomplete(normalize_slide(raw, i)) for i, raw in enumerate(raw_slides)]
    slides = _split_practice_answers(slides)
    warnings = structure_warnings(slides, requested_count)
    for warning in warnings:
        logger.warning("[presentation] %s", warning)
    return Presentation(title=title.strip(), slides=slides), warnings
