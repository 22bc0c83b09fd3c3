"""
End-to-end tests for GenerationOrchestrator with a scripted model.

Every test runs offline: the model is a ScriptedAI (or RoutedAI when the
review agents are enabled) and backoff delays are configured to zero.
"""
import sys
import os
import asyncio
import json
import logging

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from lessonforge.core.errors import AIError, ServiceError
from lessonforge.models.generation import GenerationRequest, PresentationRequest, RegenerateItemRequest
from lessonforge.services.orchestrator import GenerationOrchestrator
from lessonforge.utils.item_validator import ValidationOutcome

from fakes import RoutedAI, ScriptedAI, make_settings, matching, oq, sc, tasks_json

_REQUEST = GenerationRequest(subject="math", grade=6, topic="Fractions", format="test_and_open", variant_index=0)


def _run(coro):
    return asyncio.run(coro)


def _selection(count, start=0):
    return [sc(i) for i in range(start, start + count)]


def _open(count, start=100):
    return [oq(i) for i in range(start, start + count)]


def _orchestrator(ai, **settings):
    return GenerationOrchestrator(ai=ai, settings=make_settings(**settings))


class TestWorksheetScenarios:
    def test_exact_match(self):
        ai = ScriptedAI(tasks_json(*_selection(10), *_open(5), prose=True))
        progress = []
        worksheet = _run(_orchestrator(ai).generate_worksheet(_REQUEST, progress.append))

        assert len(ai.calls) == 1
        assert len(worksheet.test_questions) == 10
        assert len(worksheet.assignments) == 5
        assert len(worksheet.answers.test_answers) + len(worksheet.answers.assignment_answers) == 15
        assert progress == [5, 15, 60, 75, 90, 95]

    def test_initial_call_parameters(self):
        ai = ScriptedAI(tasks_json(*_selection(10), *_open(5)))
        settings = make_settings(ai_model_free="test/free", ai_model_paid="test/paid")
        _run(GenerationOrchestrator(ai=ai, settings=settings).generate_worksheet(_REQUEST))
        call = ai.calls[0]
        assert call["label"] == "worksheet"
        assert call["model"] == "test/free"
        assert call["max_tokens"] == 8000
        assert call["temperature"] == 0.5
        assert "<user_topic>Fractions</user_topic>" in call["user"]

    def test_paid_request_uses_paid_model(self):
        ai = ScriptedAI(tasks_json(*_selection(10), *_open(5)))
        settings = make_settings(ai_model_free="test/free", ai_model_paid="test/paid")
        request = _REQUEST.model_copy(update={"is_paid": True})
        _run(GenerationOrchestrator(ai=ai, settings=settings).generate_worksheet(request))
        assert ai.calls[0]["model"] == "test/paid"

    def test_shortfall_then_success(self):
        ai = ScriptedAI(
            tasks_json(*_selection(7), *_open(5)),
            tasks_json(*_selection(3, start=50)),
        )
        worksheet = _run(_orchestrator(ai).generate_worksheet(_REQUEST))
        assert len(ai.calls) == 2
        assert ai.labels() == ["worksheet", "backfill"]
        assert len(worksheet.test_questions) == 10
        assert len(worksheet.assignments) == 5

    def test_backfill_exhaustion_returns_partial_worksheet(self):
        ai = ScriptedAI(tasks_json(*_selection(4), *_open(2)), default="no json here")
        worksheet = _run(_orchestrator(ai, max_backfill_attempts=2).generate_worksheet(_REQUEST))
        assert len(ai.calls) == 3
        assert len(worksheet.test_questions) == 4
        assert len(worksheet.assignments) == 2

    def test_malformed_response(self):
        ai = ScriptedAI("Sorry, I can only talk about fractions in prose today.")
        with pytest.raises(AIError) as excinfo:
            _run(_orchestrator(ai).generate_worksheet(_REQUEST))
        assert str(excinfo.value) == "AI_ERROR"

    def test_invalid_outer_object_is_terminal(self):
        ai = ScriptedAI('{"tasks": [{"type": "open_question", "question": "What is 2+2?", "correctAnswer": "4"},]}')
        request = GenerationRequest(subject="math", grade=6, topic="Fractions", format="open_only")
        with pytest.raises(AIError, match="AI_ERROR"):
            _run(_orchestrator(ai).generate_worksheet(request))
        assert len(ai.calls) == 1

    def test_raising_progress_callback_does_not_abort(self):
        seen = []

        def on_progress(value):
            seen.append(value)
            raise RuntimeError("socket closed")

        ai = ScriptedAI(tasks_json(*_selection(10), *_open(5)))
        worksheet = _run(_orchestrator(ai).generate_worksheet(_REQUEST, on_progress))
        assert len(worksheet.test_questions) == 10
        assert len(worksheet.assignments) == 5
        assert seen == [5, 15, 60, 75, 90, 95]

    def test_initial_service_failure(self):
        ai = ScriptedAI(ServiceError("worksheet: APIConnectionError"))
        with pytest.raises(AIError, match="AI_ERROR"):
            _run(_orchestrator(ai).generate_worksheet(_REQUEST))

    def test_out_of_range_answer_falls_back_to_first_option(self, caplog):
        caplog.set_level(logging.WARNING, logger="lessonforge.assembler")
        items = _selection(9) + [sc(9, correct_index=7)] + _open(5)
        ai = ScriptedAI(tasks_json(*items))
        orchestrator = GenerationOrchestrator(
            ai=ai,
            settings=make_settings(),
            validate=lambda items, subject, grade: ValidationOutcome(),
        )
        worksheet = _run(orchestrator.generate_worksheet(_REQUEST))
        assert worksheet.answers.test_answers[9] == "a9"
        assert "out of range" in caplog.text

    def test_overshoot_is_truncated(self):
        ai = ScriptedAI(tasks_json(*_selection(13), *_open(8)))
        worksheet = _run(_orchestrator(ai).generate_worksheet(_REQUEST))
        assert len(ai.calls) == 1
        assert len(worksheet.test_questions) == 10
        assert len(worksheet.assignments) == 5

    def test_low_output_raises_shortfall_alert(self, caplog):
        caplog.set_level(logging.INFO, logger="lessonforge.telemetry")
        ai = ScriptedAI(tasks_json(*_selection(5)))
        _run(_orchestrator(ai, max_backfill_attempts=1).generate_worksheet(_REQUEST))
        assert "generation_shortfall_alert" in caplog.text


class TestValidationStages:
    def test_invalid_items_are_removed_by_identity(self):
        items = _selection(3) + [sc(3, correct_index=9)] + _selection(6, start=4) + _open(5)
        ai = ScriptedAI(tasks_json(*items))
        worksheet = _run(_orchestrator(ai).generate_worksheet(_REQUEST))
        questions = [q.question for q in worksheet.test_questions]
        assert len(questions) == 9
        assert sc(3)["question"] not in questions
        assert len(worksheet.assignments) == 5

    def test_invalid_open_item_removed_without_touching_selection(self):
        items = _selection(10) + _open(4) + [matching(7, pairs=((0, 0), (0, 1)))]
        ai = ScriptedAI(tasks_json(*items))
        worksheet = _run(_orchestrator(ai).generate_worksheet(_REQUEST))
        assert len(worksheet.test_questions) == 10
        assert len(worksheet.assignments) == 4

    def test_agent_fix_lands_in_the_right_family(self):
        items = _selection(10) + _open(5)
        fixed = oq(102, answer="corrected")
        verdicts = json.dumps({"tasks": [
            {"index": i, "status": "error" if i == 12 else "ok", **({"issue": "wrong"} if i == 12 else {})}
            for i in range(15)
        ]})
        ai = RoutedAI({
            "worksheet": [tasks_json(*items)],
            "answer-verifier": [verdicts],
            "quality-checker": ['{"tasks": []}'],
            "task-fixer": [json.dumps(fixed)],
        })
        worksheet = _run(_orchestrator(ai, enable_agent_validation=True).generate_worksheet(_REQUEST))
        assert len(worksheet.test_questions) == 10
        assert worksheet.answers.assignment_answers[2] == "corrected"
        assert worksheet.answers.assignment_answers[1] == "answer 101"

    def test_agent_failure_keeps_worksheet(self):
        items = _selection(10) + _open(5)
        ai = RoutedAI({
            "worksheet": [tasks_json(*items)],
            "answer-verifier": [ServiceError("down")],
            "quality-checker": [ServiceError("down")],
        })
        worksheet = _run(_orchestrator(ai, enable_agent_validation=True).generate_worksheet(_REQUEST))
        assert len(worksheet.test_questions) == 10
        assert len(worksheet.assignments) == 5

    def test_agents_skipped_when_disabled(self):
        ai = ScriptedAI(tasks_json(*_selection(10), *_open(5)))
        _run(_orchestrator(ai, enable_agent_validation=False).generate_worksheet(_REQUEST))
        assert ai.labels() == ["worksheet"]


class TestRegenerate:
    def _request(self, **overrides):
        values = dict(subject="math", grade=6, topic="Fractions", task_type="single_choice", is_test=True)
        values.update(overrides)
        return RegenerateItemRequest(**values)

    def test_single_test_question(self):
        ai = ScriptedAI(tasks_json(sc(0, correct_index=2)))
        item = _run(_orchestrator(ai).regenerate_single_item(self._request()))
        assert item.test_question.answer == "c0"
        assert item.answer == "c0"
        assert ai.calls[0]["max_tokens"] == 2000

    def test_missing_type_taken_from_request(self):
        task = oq(0, answer="7/8")
        del task["type"]
        ai = ScriptedAI(tasks_json(task))
        item = _run(_orchestrator(ai).regenerate_single_item(
            self._request(task_type="open_question", is_test=False)))
        assert item.assignment.title == "Task"
        assert item.answer == "7/8"

    def test_empty_task_list(self):
        ai = ScriptedAI(tasks_json())
        with pytest.raises(AIError):
            _run(_orchestrator(ai).regenerate_single_item(self._request()))

    def test_unparseable_response(self):
        ai = ScriptedAI("no json")
        with pytest.raises(AIError):
            _run(_orchestrator(ai).regenerate_single_item(self._request()))


class TestPresentation:
    _REQUEST = PresentationRequest(subject="math", grade=6, topic="Fractions", slide_count=12)

    def test_slide_defaults(self):
        deck = {"title": "Fractions", "slides": [
            {"type": "title", "title": "Fractions"},
            {"type": "content"},
            {"type": "conclusion", "title": "Summary", "content": ["a"]},
        ]}
        ai = ScriptedAI("```json\n" + json.dumps(deck) + "\n```")
        progress = []
        presentation = _run(_orchestrator(ai).generate_presentation(self._REQUEST, progress.append))
        assert presentation.slides[1].title == "Slide 2"
        assert presentation.slides[1].content == []
        assert progress == [5, 15, 65, 75, 95]
        assert ai.calls[0]["temperature"] == 0.6
        assert ai.calls[0]["max_tokens"] == 8000

    def test_paid_presentation_model(self):
        deck = {"title": "Fractions", "slides": [{"type": "title", "title": "Fractions"}]}
        ai = ScriptedAI(json.dumps(deck))
        request = self._REQUEST.model_copy(update={"is_paid": True})
        _run(_orchestrator(ai, ai_model_presentation="test/slides").generate_presentation(request))
        assert ai.calls[0]["model"] == "test/slides"

    def test_deck_without_slides(self):
        ai = ScriptedAI('{"title": "Fractions", "slides": []}')
        with pytest.raises(AIError):
            _run(_orchestrator(ai).generate_presentation(self._REQUEST))

    def test_service_failure(self):
        ai = ScriptedAI(ServiceError("down"))
        with pytest.raises(AIError):
            _run(_orchestrator(ai).generate_presentation(self._REQUEST))
