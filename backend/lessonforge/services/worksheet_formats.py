"""Worksheet formats, their size variants and the per-type task distribution."""
from dataclasses import dataclass

from lessonforge.models.generation import TargetCounts
from lessonforge.services.task_types import OPEN_TYPE_IDS, SELECTION_TYPE_IDS

DEFAULT_FORMAT = "test_and_open"
DEFAULT_TARGETS = TargetCounts(open_count=5, selection_count=10)


@dataclass(frozen=True)
class FormatVariant:
    open_tasks: int
    test_questions: int
    generations: int
    label: str | None = None


@dataclass(frozen=True)
class WorksheetFormat:
    id: str
    name: str
    description: str
    variants: tuple[FormatVariant, ...]


WORKSHEET_FORMATS: dict[str, WorksheetFormat] = {
    "open_only": WorksheetFormat(
        id="open_only",
        name="Tasks only",
        description="Tasks with a written answer",
        variants=(
            FormatVariant(open_tasks=5, test_questions=0, generations=1),
            FormatVariant(open_tasks=10, test_questions=0, generations=2, label="+Pro"),
            FormatVariant(open_tasks=15, test_questions=0, generations=3, label="+Pro"),
        ),
    ),
    "test_only": WorksheetFormat(
        id="test_only",
        name="Test only",
        description="Multiple-choice test questions",
        variants=(
            FormatVariant(open_tasks=0, test_questions=10, generations=1),
            FormatVariant(open_tasks=0, test_questions=15, generations=2, label="+Pro"),
            FormatVariant(open_tasks=0, test_questions=20, generations=3, label="+Pro"),
        ),
    ),
    "test_and_open": WorksheetFormat(
        id="test_and_open",
        name="Test + tasks",
        description="A test combined with written-answer tasks",
        variants=(
            FormatVariant(open_tasks=5, test_questions=10, generations=1),
            FormatVariant(open_tasks=10, test_questions=15, generations=2, label="+Pro"),
            FormatVariant(open_tasks=15, test_questions=20, generations=3, label="+Pro"),
        ),
    ),
}


def get_format_variant(format_id: str, variant_index: int) -> FormatVariant | None:
    fmt = WORKSHEET_FORMATS.get(format_id)
    if fmt is None or not 0 <= variant_index < len(fmt.variants):
        return None
    return fmt.variants[variant_index]


def get_target_counts(format_id: str, variant_index: int) -> TargetCounts:
    variant = get_format_variant(format_id, variant_index)
    if variant is None:
        return DEFAULT_TARGETS
    return TargetCounts(open_count=variant.open_tasks, selection_count=variant.test_questions)


def calculate_generation_cost(format_id: str, variant_index: int) -> int:
    variant = get_format_variant(format_id, variant_index)
    return variant.generations if variant else 1


def get_recommended_task_types(format_id: str) -> tuple[str, ...]:
    if format_id == "test_only":
        return SELECTION_TYPE_IDS
    if format_id == "open_only":
        return OPEN_TYPE_IDS
    return SELECTION_TYPE_IDS + OPEN_TYPE_IDS


def resolve_task_types(format_id: str, requested, targets: TargetCounts) -> tuple[str, ...]:
    """Task types to generate for one request.

    Uses the requested list (or the format's recommended list when none was
    given) and adds a family's default types when that family has a non-zero
    target but no requested type, so every target can actually be filled.
    """
    types = list(requested) if requested else list(get_recommended_task_types(format_id))
    if targets.selection_count > 0 and not any(t in SELECTION_TYPE_IDS for t in types):
        types.extend(SELECTION_TYPE_IDS)
    if targets.open_count > 0 and not any(t in OPEN_TYPE_IDS for t in types):
        types.extend(OPEN_TYPE_IDS)
    return tuple(types)


# ──────────────────────────────────────────────
# Distribution across item types
# ──────────────────────────────────────────────

_OPEN_MATCHING_QUOTA = {5: 1, 10: 2, 15: 3}
_OPEN_FILL_BLANK_QUOTA = {5: 1, 10: 2, 15: 3}
_TEST_MULTIPLE_CHOICE_QUOTA = {10: 3, 15: 5, 20: 7}


def distribute_open_tasks(total: int, selected_types) -> list[tuple[str, int]]:
    """matching and fill_blank get fixed quotas, open_question takes the rest."""
    open_types = [t for t in OPEN_TYPE_IDS if t in selected_types]
    if not open_types or total <= 0:
        return []

    remaining = total
    result: list[list] = []
    for type_id, quotas in (("matching", _OPEN_MATCHING_QUOTA), ("fill_blank", _OPEN_FILL_BLANK_QUOTA)):
        if type_id in open_types:
            count = min(quotas.get(total, max(1, total // 5)), remaining)
            result.append([type_id, count])
            remaining -= count

    if "open_question" in open_types and remaining > 0:
        result.append(["open_question", remaining])
    elif remaining > 0:
        # spread the remainder over the quota types, first ones get the leftover
        existing = [entry for entry in result if entry[1] > 0]
        if existing:
            per_type, leftover = divmod(remaining, len(existing))
            for entry in existing:
                entry[1] += per_type
                if leftover > 0:
                    entry[1] += 1
                    leftover -= 1

    return [(type_id, count) for type_id, count in result if count > 0]


def distribute_test_tasks(total: int, selected_types) -> list[tuple[str, int]]:
    """multiple_choice gets a fixed quota, single_choice takes the rest."""
    test_types = [t for t in SELECTION_TYPE_IDS if t in selected_types]
    if not test_types or total <= 0:
        return []

    remaining = total
    result: list[list] = []
    if "multiple_choice" in test_types:
        count = min(_TEST_MULTIPLE_CHOICE_QUOTA.get(total, max(1, round(total * 0.3))), remaining)
        result.append(["multiple_choice", count])
        remaining -= count

    if "single_choice" in test_types and remaining > 0:
        result.append(["single_choice", remaining])
    elif remaining > 0 and result:
        result[0][1] += remaining

    return [(type_id, count) for type_id, count in result if count > 0]


def distribute_all_tasks(open_total: int, test_total: int, selected_types) -> list[tuple[str, int]]:
    return distribute_test_tasks(test_total, selected_types) + distribute_open_tasks(open_total, selected_types)
