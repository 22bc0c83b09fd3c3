"""
Tests for worksheet formats, target counts and the per-type distribution.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from lessonforge.models.generation import TargetCounts
from lessonforge.services.task_types import OPEN_TYPE_IDS, SELECTION_TYPE_IDS, get_task_type, types_of_family
from lessonforge.services.worksheet_formats import (
    DEFAULT_TARGETS,
    calculate_generation_cost,
    distribute_all_tasks,
    distribute_open_tasks,
    distribute_test_tasks,
    get_recommended_task_types,
    get_target_counts,
    resolve_task_types,
)

ALL_TYPES = SELECTION_TYPE_IDS + OPEN_TYPE_IDS


class TestTargetCounts:
    @pytest.mark.parametrize("format_id,variant,expected", [
        ("open_only", 0, (5, 0)),
        ("open_only", 2, (15, 0)),
        ("test_only", 0, (0, 10)),
        ("test_only", 1, (0, 15)),
        ("test_and_open", 0, (5, 10)),
        ("test_and_open", 2, (15, 20)),
    ])
    def test_variants(self, format_id, variant, expected):
        targets = get_target_counts(format_id, variant)
        assert (targets.open_count, targets.selection_count) == expected

    def test_unknown_format_falls_back_to_default(self):
        assert get_target_counts("essay_only", 0) == DEFAULT_TARGETS
        assert get_target_counts("test_only", 7) == DEFAULT_TARGETS

    def test_total(self):
        assert TargetCounts(open_count=5, selection_count=10).total == 15

    def test_negative_counts_rejected(self):
        with pytest.raises(ValueError):
            TargetCounts(open_count=-1, selection_count=3)

    def test_generation_cost(self):
        assert calculate_generation_cost("test_and_open", 0) == 1
        assert calculate_generation_cost("test_and_open", 2) == 3
        assert calculate_generation_cost("nope", 0) == 1


class TestDistribution:
    def test_open_five(self):
        assert distribute_open_tasks(5, ALL_TYPES) == [("matching", 1), ("fill_blank", 1), ("open_question", 3)]

    def test_open_fifteen(self):
        assert distribute_open_tasks(15, ALL_TYPES) == [("matching", 3), ("fill_blank", 3), ("open_question", 9)]

    def test_open_without_open_question_spreads_remainder(self):
        dist = dict(distribute_open_tasks(5, ("matching", "fill_blank")))
        assert dist == {"matching": 3, "fill_blank": 2}

    def test_open_only_open_question(self):
        assert distribute_open_tasks(10, ("open_question",)) == [("open_question", 10)]

    def test_test_ten(self):
        assert distribute_test_tasks(10, ALL_TYPES) == [("multiple_choice", 3), ("single_choice", 7)]

    def test_test_twenty(self):
        assert distribute_test_tasks(20, ALL_TYPES) == [("multiple_choice", 7), ("single_choice", 13)]

    def test_test_only_multiple_choice_takes_all(self):
        assert distribute_test_tasks(15, ("multiple_choice",)) == [("multiple_choice", 15)]

    def test_zero_total_or_no_family_types(self):
        assert distribute_test_tasks(0, ALL_TYPES) == []
        assert distribute_open_tasks(5, SELECTION_TYPE_IDS) == []

    @pytest.mark.parametrize("open_total,test_total", [(5, 10), (10, 15), (15, 20), (0, 10), (5, 0)])
    def test_all_sums_to_targets(self, open_total, test_total):
        dist = distribute_all_tasks(open_total, test_total, ALL_TYPES)
        assert sum(count for _, count in dist) == open_total + test_total
        assert all(count > 0 for _, count in dist)


class TestTaskTypes:
    def test_recommended_types_by_format(self):
        assert get_recommended_task_types("test_only") == SELECTION_TYPE_IDS
        assert get_recommended_task_types("open_only") == OPEN_TYPE_IDS
        assert set(get_recommended_task_types("test_and_open")) == set(ALL_TYPES)

    def test_resolve_uses_requested_types(self):
        targets = TargetCounts(open_count=5, selection_count=10)
        assert resolve_task_types("test_and_open", ("single_choice", "open_question"), targets) == (
            "single_choice", "open_question",
        )

    def test_resolve_adds_defaults_for_uncovered_family(self):
        targets = TargetCounts(open_count=5, selection_count=10)
        types = resolve_task_types("test_and_open", ("matching",), targets)
        assert types[0] == "matching"
        assert set(SELECTION_TYPE_IDS) <= set(types)

    def test_resolve_without_request_uses_format(self):
        targets = TargetCounts(open_count=0, selection_count=10)
        assert resolve_task_types("test_only", None, targets) == SELECTION_TYPE_IDS

    def test_types_of_family(self):
        assert types_of_family(ALL_TYPES, "selection") == list(SELECTION_TYPE_IDS)
        assert types_of_family(("fill_blank", "single_choice"), "open") == ["fill_blank"]

    def test_unknown_task_type(self):
        with pytest.raises(ValueError):
            get_task_type("essay")
