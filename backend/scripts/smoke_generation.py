"""
Generation pipeline smoke test, run from backend/ with:
    python scripts/smoke_generation.py            # offline, canned model output
    python scripts/smoke_generation.py --live     # real provider from .env

Steps:
  1. Worksheet with a short first answer (one backfill round expected)
  2. Malformed model output surfaces as AI_ERROR
  3. Single task regeneration
  4. Presentation with a broken slide (defaults applied)

Offline mode makes no network calls. Live mode spends real tokens and only
checks shapes, not exact counts.
"""
import sys, os, json, time, asyncio, argparse, logging
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

from lessonforge.core.config import Settings
from lessonforge.core.errors import AIError
from lessonforge.models.generation import GenerationRequest, PresentationRequest, RegenerateItemRequest
from lessonforge.services.orchestrator import GenerationOrchestrator

PASS = "\033[32m✓\033[0m"
FAIL = "\033[31m✗\033[0m"
results = []


def check(name, cond, detail=""):
    status = PASS if cond else FAIL
    print(f"  {status}  {name}" + (f"  [{detail}]" if detail else ""))
    results.append((name, cond))


class CannedModel:
    """Answers by call label; the worksheet call deliberately comes back short."""

    def __init__(self):
        self.calls = []
        self.malformed = False

    async def invoke(self, system_prompt, user_prompt, *, model, max_tokens, temperature, label="generation"):
        self.calls.append(label)
        if label == "worksheet":
            if self.malformed:
                return "Unfortunately I cannot produce this worksheet."
            tasks = [_sc(i) for i in range(8)] + [_oq(i) for i in range(5)]
            return "Here you go:\n```json\n" + json.dumps({"tasks": tasks}) + "\n```"
        if label == "backfill":
            return json.dumps({"tasks": [_sc(100), _sc(101)]})
        if label == "regenerate":
            return json.dumps({"tasks": [_oq(200)]})
        if label == "presentation":
            return json.dumps({"title": "Fractions", "slides": [
                {"type": "title", "title": "Fractions", "content": ["Grade 5"]},
                {"type": "hologram"},
                {"type": "conclusion", "title": "Summary", "content": ["Parts of a whole"]},
            ]})
        return '{"tasks": []}'


def _sc(n):
    return {"type": "single_choice", "question": f"Which fraction is equal to {n + 1}/{2 * (n + 1)}?",
            "options": ["1/2", "1/3", "2/3", "3/4"], "correctIndex": 0}


def _oq(n):
    return {"type": "open_question", "question": f"Simplify the fraction {2 * (n + 2)}/{4 * (n + 2)}.",
            "correctAnswer": "1/2"}


def main():
    parser = argparse.ArgumentParser(description="Smoke-test the generation pipeline")
    parser.add_argument("--live", action="store_true", help="call the configured provider instead of canned output")
    args = parser.parse_args()

    if args.live:
        model = None
        settings = Settings()
    else:
        model = CannedModel()
        settings = Settings(backfill_backoff_seconds=0, enable_agent_validation=False)
    orchestrator = GenerationOrchestrator(ai=model, settings=settings)

    # ---------------------------------------------------------------------------
    print("\n━━━ STEP 1: Worksheet (test + tasks, 10 + 5) ━━━")
    # ---------------------------------------------------------------------------
    progress = []
    request = GenerationRequest(subject="math", grade=5, topic="Equivalent fractions")
    try:
        t0 = time.perf_counter()
        worksheet = asyncio.run(orchestrator.generate_worksheet(request, progress.append))
        elapsed = time.perf_counter() - t0
        check("Returns a worksheet", worksheet is not None, f"{elapsed:.1f}s")
        check("Test answers match questions", len(worksheet.answers.test_answers) == len(worksheet.test_questions))
        check("Progress ends at 95", progress[-1:] == [95], str(progress))
        if model is not None:
            check("10 test questions after backfill", len(worksheet.test_questions) == 10,
                  str(len(worksheet.test_questions)))
            check("5 assignments", len(worksheet.assignments) == 5)
            check("Exactly one backfill call", model.calls.count("backfill") == 1, str(model.calls))
    except Exception as e:
        check("Worksheet generation", False, str(e))

    # ---------------------------------------------------------------------------
    print("\n━━━ STEP 2: Malformed model output ━━━")
    # ---------------------------------------------------------------------------
    if model is None:
        print("  (skipped in live mode)")
    else:
        model.malformed = True
        try:
            asyncio.run(orchestrator.generate_worksheet(request))
            check("Raises AIError", False, "no exception")
        except AIError as e:
            check("Raises AIError", True)
            check("Message is AI_ERROR", str(e) == "AI_ERROR", str(e))
        model.malformed = False

    # ---------------------------------------------------------------------------
    print("\n━━━ STEP 3: Regenerate one task ━━━")
    # ---------------------------------------------------------------------------
    try:
        item = asyncio.run(orchestrator.regenerate_single_item(RegenerateItemRequest(
            subject="math", grade=5, topic="Equivalent fractions", task_type="open_question",
        )))
        check("Assignment returned", item.assignment is not None)
        check("Answer non-empty", bool(item.answer), item.answer)
    except Exception as e:
        check("Regenerate", False, str(e))

    # ---------------------------------------------------------------------------
    print("\n━━━ STEP 4: Presentation ━━━")
    # ---------------------------------------------------------------------------
    try:
        presentation = asyncio.run(orchestrator.generate_presentation(PresentationRequest(
            subject="math", grade=5, topic="Equivalent fractions", slide_count=12,
        )))
        check("Has slides", len(presentation.slides) > 0, str(len(presentation.slides)))
        check("Every slide has a title", all(s.title for s in presentation.slides))
        if model is not None:
            check("Unknown slide type folded to content", presentation.slides[1].type == "content")
            check("Synthesized title", presentation.slides[1].title == "Slide 2")
    except Exception as e:
        check("Presentation", False, str(e))

    passed = sum(1 for _, ok in results if ok)
    print(f"\n{passed}/{len(results)} checks passed")
    return 0 if passed == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
