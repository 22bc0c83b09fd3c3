"""
Tests for answer derivation and worksheet assembly.
"""
import sys
import os
import json

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from lessonforge.models.generation import GenerationRequest, TargetCounts
from lessonforge.models.items import TrackedItem
from lessonforge.services.assembler import (
    assemble_worksheet,
    convert_single_item,
    derive_answer,
    render_assignment_text,
)

from fakes import fill_blank, matching, mc, oq, sc

_REQUEST = GenerationRequest(subject="russian", grade=5, topic="Verb conjugation")


class TestDeriveAnswer:
    def test_single_choice(self):
        assert derive_answer(sc(0, correct_index=2)) == "c0"

    def test_single_choice_out_of_range_falls_back_to_first_option(self):
        assert derive_answer(sc(0, correct_index=4)) == "a0"

    def test_single_choice_without_options(self):
        item = sc(0)
        item["options"] = []
        assert derive_answer(item) == ""

    def test_multiple_choice_joins_in_order(self):
        assert derive_answer(mc(0, correct_indices=(0, 3))) == "a0, d0"

    def test_multiple_choice_skips_bad_indices(self):
        assert derive_answer(mc(0, correct_indices=(1, 8))) == "b0"

    def test_open_question(self):
        assert derive_answer(oq(0, answer="42")) == "42"

    def test_matching_pairs(self):
        assert derive_answer(matching(0, pairs=((0, 1), (1, 0)))) == "1-B, 2-A"

    def test_matching_skips_unresolvable_pairs(self):
        assert derive_answer(matching(0, pairs=((0, 0), (1, 9)))) == "1-A"

    def test_matching_right_index_past_z_is_skipped(self, caplog):
        item = matching(0, pairs=((0, 26), (1, 0)))
        item["rightColumn"] = [f"right{i}" for i in range(27)]
        assert derive_answer(item) == "2-A"
        assert "does not resolve" in caplog.text

    def test_fill_blank(self):
        assert derive_answer(fill_blank(3)) == "(1) first3; (2) second3"

    def test_fill_blank_without_position_is_skipped(self, caplog):
        item = fill_blank(0)
        item["blanks"] = [{"correctAnswer": "x"}, {"position": 2, "correctAnswer": "y"}]
        assert derive_answer(item) == "(2) y"
        assert "without a usable position" in caplog.text

    def test_unknown_type_uses_correct_answer(self):
        assert derive_answer({"type": "essay", "correctAnswer": "free form"}) == "free form"
        assert derive_answer({"type": "essay"}) == ""

    def test_tracked_item(self):
        assert derive_answer(TrackedItem(0, oq(0, answer="yes"))) == "yes"


class TestRendering:
    def test_matching_marker(self):
        text = render_assignment_text(matching(1))
        assert text.startswith("<!--MATCHING:") and text.endswith("-->")
        data = json.loads(text[len("<!--MATCHING:"):-len("-->")])
        assert data == {
            "type": "matching",
            "instruction": "Match the terms of group 1 with definitions",
            "leftColumn": ["left1-1", "left1-2"],
            "rightColumn": ["right1-1", "right1-2"],
        }

    def test_matching_marker_default_instruction(self):
        item = matching(0)
        del item["instruction"]
        data = json.loads(render_assignment_text(item)[len("<!--MATCHING:"):-len("-->")])
        assert data["instruction"] == "Match the items"

    def test_fill_blank_and_question_text(self):
        assert render_assignment_text(fill_blank(2)) == "Sentence 2 has ___(1)___ and ___(2)___ gaps."
        assert render_assignment_text(oq(2)) == "Open question number 2: explain the rule."


class TestAssembleWorksheet:
    def test_exact_counts(self):
        selection = [sc(i) for i in range(3)]
        open_items = [oq(10), matching(11)]
        ws = assemble_worksheet(selection, open_items, _REQUEST, TargetCounts(open_count=2, selection_count=3))
        assert len(ws.test_questions) == 3
        assert [a.title for a in ws.assignments] == ["Task 1", "Task 2"]
        assert ws.answers.test_answers == ["b0", "b1", "b2"]
        assert ws.answers.assignment_answers == ["answer 10", "1-B, 2-A"]
        assert (ws.subject, ws.grade, ws.topic) == ("russian", 5, "Verb conjugation")

    def test_truncates_each_family_to_its_target(self):
        ws = assemble_worksheet(
            [sc(i) for i in range(12)],
            [oq(i) for i in range(7)],
            _REQUEST,
            TargetCounts(open_count=5, selection_count=10),
        )
        assert len(ws.test_questions) == 10
        assert len(ws.assignments) == 5
        assert len(ws.answers.test_answers) == 10
        assert len(ws.answers.assignment_answers) == 5

    def test_shortfall_is_not_padded(self):
        ws = assemble_worksheet([sc(0)], [], _REQUEST, TargetCounts(open_count=5, selection_count=10))
        assert len(ws.test_questions) == 1
        assert ws.assignments == []

    def test_tracked_items_accepted(self):
        ws = assemble_worksheet(
            [TrackedItem(0, sc(0))], [TrackedItem(1, oq(1))], _REQUEST,
            TargetCounts(open_count=1, selection_count=1),
        )
        assert ws.test_questions[0].options == ["a0", "b0", "c0", "d0"]
        assert ws.assignments[0].text == "Open question number 1: explain the rule."


class TestConvertSingleItem:
    def test_as_test_question(self):
        item = convert_single_item(sc(0, correct_index=0), is_test=True)
        assert item.assignment is None
        assert item.test_question.answer == "a0"
        assert item.answer == "a0"

    def test_as_assignment(self):
        item = convert_single_item(fill_blank(0), is_test=False)
        assert item.test_question is None
        assert item.assignment.title == "Task"
        assert item.answer == "(1) first0; (2) second0"
