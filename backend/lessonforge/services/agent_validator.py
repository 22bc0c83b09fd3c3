"""
Agent Validator: LLM review of generated items, with auto-fix.

Two agents read the whole item list at once and run concurrently:

  answer-verifier  : solves each item and compares with the keyed answer
                     (WRONG_ANSWER errors).
  quality-checker  : wording, solvability, topic fit (QUALITY_ISSUE errors)
                     and difficulty fit (DIFFICULTY_MISMATCH warnings).

Items with at least one error are then sent, one at a time and at most
``max_agent_fixes`` of them, to a fixer prompt. A fix replaces the item only
when it parses, keeps the item's ``type`` and passes the deterministic
validator.

Everything here is fail-open: an agent that errors, times out or returns
garbage contributes an AGENT_ERROR warning and the items are kept as they are.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from lessonforge.core.config import Settings, get_settings
from lessonforge.core.errors import ParseError, ServiceError
from lessonforge.models.generation import GenerationContext
from lessonforge.models.items import item_type
from lessonforge.prompts.worksheet_generation import DIFFICULTY_NAMES, SUBJECT_NAMES
from lessonforge.services.ai import AIService
from lessonforge.services.extractor import extract_items, extract_json
from lessonforge.utils.item_validator import validate_items

logger = logging.getLogger(__name__)

ANSWER_VERIFIER = "answer-verifier"
QUALITY_CHECKER = "quality-checker"

WRONG_ANSWER = "WRONG_ANSWER"
QUALITY_ISSUE = "QUALITY_ISSUE"
DIFFICULTY_MISMATCH = "DIFFICULTY_MISMATCH"
AGENT_ERROR = "AGENT_ERROR"

_AGENT_MAX_TOKENS = 4000
_AGENT_TEMPERATURE = 0.1
_FIXER_MAX_TOKENS = 3000
_FIXER_TEMPERATURE = 0.2


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AgentIssue:
    code: str
    message: str
    suggestion: Optional[str] = None


@dataclass
class AgentItemResult:
    item_index: int          # -1 for agent-level problems
    status: str              # "ok" | "warning" | "error"
    issues: list = field(default_factory=list)


@dataclass
class AgentReport:
    agent_name: str
    items: list = field(default_factory=list)   # AgentItemResult

    @property
    def total_errors(self) -> int:
        return sum(1 for r in self.items if r.status == "error")

    @property
    def total_warnings(self) -> int:
        return sum(1 for r in self.items if r.status == "warning")


@dataclass
class FixResult:
    item_index: int
    success: bool
    original: dict
    fixed: Optional[dict] = None
    description: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AgentValidationResult:
    """Output of AgentValidator.validate().

    ``fixed_items`` is the full item list with accepted fixes swapped in; its
    length always equals the input length.
    """
    problem_items: list = field(default_factory=list)   # sorted item indexes with errors
    fixed_items: list = field(default_factory=list)
    issues: list = field(default_factory=list)          # (item_index, agent_name, AgentIssue)
    fix_results: list = field(default_factory=list)     # FixResult
    agents: list = field(default_factory=list)          # AgentReport

    @property
    def valid(self) -> bool:
        return not self.problem_items


def _failed_report(agent_name: str, message: str) -> AgentReport:
    return AgentReport(
        agent_name=agent_name,
        items=[AgentItemResult(-1, "warning", [AgentIssue(AGENT_ERROR, message)])],
    )


# ---------------------------------------------------------------------------
# Prompt helpers
# ---------------------------------------------------------------------------

VERIFIER_SUBJECT_PROMPTS: dict[str, str] = {
    "math": "You are a mathematics teacher (grades 1-6) checking a worksheet. Check arithmetic, fractions, percentages and simple equations.",
    "algebra": "You are an algebra teacher (grades 7-11) checking a worksheet. Check equations, functions, graphs, logarithms and trigonometry.",
    "geometry": "You are a geometry teacher (grades 7-11) checking a worksheet. Check theorems, area and volume formulas, vectors and coordinates.",
    "russian": "You are a Russian language teacher (grades 1-11) checking a worksheet. Check spelling, punctuation, grammar, parts of speech and syntax.",
}


def _options_line(options: list) -> str:
    return "; ".join(f"{i}) {o}" for i, o in enumerate(options))


def format_item_for_prompt(item: dict, index: int, *, with_answers: bool = True) -> str:
    kind = item_type(item)
    parts = [f"--- Task {index} (type: {kind or 'unknown'}) ---"]
    options = item.get("options") if isinstance(item.get("options"), list) else []

    if kind in ("single_choice", "multiple_choice"):
        parts.append(f"Question: {item.get('question', '')}")
        parts.append(f"Options: {_options_line(options)}")
        if with_answers and kind == "single_choice":
            parts.append(f"Keyed answer: option {item.get('correctIndex')}")
        elif with_answers:
            parts.append(f"Keyed answers: options {item.get('correctIndices')}")
    elif kind == "open_question":
        parts.append(f"Question: {item.get('question', '')}")
        if with_answers:
            parts.append(f"Keyed answer: {item.get('correctAnswer', '')}")
    elif kind == "matching":
        parts.append(f"Instruction: {item.get('instruction', '')}")
        parts.append(f"Left column: {_options_line(item.get('leftColumn') or [])}")
        parts.append(f"Right column: {_options_line(item.get('rightColumn') or [])}")
        if with_answers:
            parts.append(f"Keyed pairs: {item.get('correctPairs')}")
    elif kind == "fill_blank":
        parts.append(f"Text: {item.get('textWithBlanks', '')}")
        if with_answers:
            blanks = [b for b in item.get("blanks") or [] if isinstance(b, dict)]
            parts.append("Blanks: " + "; ".join(f"({b.get('position')}) {b.get('correctAnswer')}" for b in blanks))
    else:
        parts.append(json.dumps(item, ensure_ascii=False))
    return "\n".join(parts)


def _response_contract(count: int, statuses: str) -> str:
    return (
        "Return ONLY JSON (no markdown):\n"
        '{"tasks": [{"index": 0, "status": "ok"}, {"index": 1, "status": "error", "issue": "..."}]}\n\n'
        f"Check ALL {count} tasks. Indexes go from 0 to {count - 1}.\n{statuses}"
    )


# ---------------------------------------------------------------------------
# AgentValidator
# ---------------------------------------------------------------------------

class AgentValidator:
    """Runs the LLM review agents and the fixer through one AIService."""

    def __init__(self, ai: AIService, settings: Settings | None = None):
        self.ai = ai
        self.settings = settings or get_settings()

    @property
    def model(self) -> str:
        return self.settings.ai_model_agents

    async def validate(
        self,
        items: list[dict],
        context: GenerationContext,
        auto_fix: bool = True,
    ) -> AgentValidationResult:
        result = AgentValidationResult(fixed_items=list(items))
        if not items:
            return result

        logger.info("[agent_validator] validating %d items", len(items))
        answer_report, quality_report = await asyncio.gather(
            self.verify_answers(items, context),
            self.check_quality(items, context),
        )
        result.agents = [answer_report, quality_report]

        errors_by_item: dict[int, list[AgentIssue]] = {}
        for report in result.agents:
            for item_result in report.items:
                if item_result.item_index < 0:
                    for issue in item_result.issues:
                        logger.warning("[agent_validator] %s: %s %s", report.agent_name, issue.code, issue.message)
                    continue
                for issue in item_result.issues:
                    result.issues.append((item_result.item_index, report.agent_name, issue))
                if item_result.status == "error":
                    errors_by_item.setdefault(item_result.item_index, []).extend(item_result.issues)

        result.problem_items = sorted(errors_by_item)

        if auto_fix and result.problem_items:
            to_fix = result.problem_items[: self.settings.max_agent_fixes]
            if len(to_fix) < len(result.problem_items):
                logger.info("[agent_validator] fixing %d of %d items (limit %d)",
                            len(to_fix), len(result.problem_items), self.settings.max_agent_fixes)
            # one fixer call at a time
            for index in to_fix:
                issues = errors_by_item[index]
                issue = issues[0] if issues else AgentIssue(QUALITY_ISSUE, "Task was rejected by review")
                fix = await self.fix_item(items[index], index, issue, context)
                if fix.success:
                    result.fixed_items[index] = fix.fixed
                    logger.info("[agent_validator] item %d fixed: %s", index, fix.description)
                else:
                    logger.info("[agent_validator] item %d kept as is: %s", index, fix.error)
                result.fix_results.append(fix)

        fixed_count = sum(1 for f in result.fix_results if f.success)
        logger.info("[agent_validator] done: %d problem items, %d fixed, %d issues",
                    len(result.problem_items), fixed_count, len(result.issues))
        return result

    # ── Agents ────────────────────────────────────────────────────────────

    async def _run_agent(self, agent_name: str, prompt: str, item_count: int, error_code: str) -> AgentReport:
        try:
            raw = await self.ai.invoke(
                "",
                prompt,
                model=self.model,
                max_tokens=_AGENT_MAX_TOKENS,
                temperature=_AGENT_TEMPERATURE,
                label=agent_name,
            )
            entries = extract_json(raw, lenient=True).get("tasks")
        except (ServiceError, ParseError) as exc:
            logger.warning("[agent_validator] %s failed: %s", agent_name, exc)
            return _failed_report(agent_name, f"Agent could not complete the check: {exc.__class__.__name__}")

        if not isinstance(entries, list):
            return _failed_report(agent_name, "Agent response has no task list")

        report = AgentReport(agent_name=agent_name)
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            index = entry.get("index")
            if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < item_count:
                logger.warning("[agent_validator] %s returned an unknown index %r", agent_name, index)
                continue
            status = entry.get("status")
            if status not in ("ok", "warning", "error"):
                status = "ok"
            issues = []
            message = entry.get("issue")
            if status != "ok" and message:
                code = error_code if status == "error" else entry.get("code") or DIFFICULTY_MISMATCH
                issues.append(AgentIssue(code, str(message)))
            report.items.append(AgentItemResult(index, status, issues))

        logger.info("[agent_validator] %s: %d errors, %d warnings",
                    agent_name, report.total_errors, report.total_warnings)
        return report

    async def verify_answers(self, items: list[dict], context: GenerationContext) -> AgentReport:
        subject_prompt = VERIFIER_SUBJECT_PROMPTS.get(context.subject, VERIFIER_SUBJECT_PROMPTS["math"])
        tasks_text = "\n\n".join(format_item_for_prompt(item, i) for i, item in enumerate(items))
        prompt = (
            f"{subject_prompt}\n"
            "For every task: solve it yourself, compare with the keyed answer, and if they differ "
            "describe the mistake and give the correct answer.\n\n"
            f"Tasks to check:\n\n{tasks_text}\n\n"
            + _response_contract(len(items), '- "error": the keyed answer is wrong\n- "ok": the keyed answer is correct')
        )
        return await self._run_agent(ANSWER_VERIFIER, prompt, len(items), WRONG_ANSWER)

    async def check_quality(self, items: list[dict], context: GenerationContext) -> AgentReport:
        subject_name = SUBJECT_NAMES.get(context.subject, context.subject)
        difficulty_name = DIFFICULTY_NAMES.get(context.difficulty, context.difficulty)
        tasks_text = "\n\n".join(
            format_item_for_prompt(item, i, with_answers=False) for i, item in enumerate(items)
        )
        prompt = (
            f"You are a {subject_name.lower()} methodologist reviewing a worksheet.\n"
            f"Grade: {context.grade}\nTopic: {context.topic}\n"
            f"Difficulty level: {difficulty_name} ({context.difficulty})\n\n"
            f"Tasks to check:\n\n{tasks_text}\n\n"
            + _response_contract(
                len(items),
                '- "error": wording is incorrect, no option is right, the task is off topic or unsolvable\n'
                f'- "warning": the difficulty does not match the {difficulty_name} level\n'
                '- "ok": the task is fine',
            )
        )
        return await self._run_agent(QUALITY_CHECKER, prompt, len(items), QUALITY_ISSUE)

    # ── Fixer ─────────────────────────────────────────────────────────────

    async def fix_item(
        self,
        item: dict,
        index: int,
        issue: AgentIssue,
        context: GenerationContext,
    ) -> FixResult:
        kind = item_type(item)
        suggestion = f"\nSUGGESTION: {issue.suggestion}" if issue.suggestion else ""
        prompt = (
            "You are an editor of school materials. Fix the mistake in the task.\n"
            f"Subject: {SUBJECT_NAMES.get(context.subject, context.subject)}\n"
            f"Grade: {context.grade}\n"
            f"Topic: {context.topic}\n\n"
            f"TASK WITH A MISTAKE:\n{json.dumps(item, ensure_ascii=False, indent=2)}\n\n"
            f"MISTAKE FOUND:\n{issue.message}{suggestion}\n\n"
            "WHAT TO DO:\n"
            "1. Fix the mistake\n"
            "2. Make sure the answer is correct\n"
            f'3. Keep the task type and format (type: "{kind}")\n\n'
            "Return the fixed task in the same JSON format. JSON only, no explanations."
        )
        try:
            raw = await self.ai.invoke(
                "",
                prompt,
                model=self.model,
                max_tokens=_FIXER_MAX_TOKENS,
                temperature=_FIXER_TEMPERATURE,
                label="task-fixer",
            )
            payload = extract_json(raw, lenient=True)
        except (ServiceError, ParseError) as exc:
            return FixResult(index, False, item, error=f"{exc.__class__.__name__}: {exc}")

        # some models wrap the single task in {"tasks": [...]}
        if "tasks" in payload and "type" not in payload:
            wrapped = extract_items(payload)
            if not wrapped:
                return FixResult(index, False, item, error="Empty task list in fixer response")
            payload = wrapped[0]

        payload.setdefault("type", kind)
        if payload.get("type") != kind:
            return FixResult(index, False, item, error=f"Fixer changed type to {payload.get('type')!r}")

        check = validate_items([payload], context.subject, context.grade)
        if not check.valid:
            codes = ", ".join(sorted({e.code for e in check.errors}))
            return FixResult(index, False, item, error=f"Fixed task failed validation ({codes})")

        return FixResult(index, True, item, fixed=payload, description=f"{issue.code}: fixed")
