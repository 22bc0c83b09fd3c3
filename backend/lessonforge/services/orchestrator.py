"""
Generation Orchestrator: drives one worksheet or presentation request end to end.

Worksheet pipeline:

  prompt → model → extract → classify → reconcile shortfall
         → deterministic validation (removals by ordinal)
         → agent validation + auto-fix → assemble

Only the initial model call (and its parse) can fail the request; it fails
with the opaque AIError. Every later stage degrades gracefully: backfill and
agent failures are logged and the worksheet goes out with what is there.

Progress milestones: worksheet 5, 15, 60, 75, 90, 95; presentation 5, 15,
65, 75, 95.
"""
import logging
import time
from typing import Optional

from lessonforge.core.config import Settings, get_settings
from lessonforge.core.errors import AIError, ParseError, ServiceError
from lessonforge.models.generation import (
    GenerationContext,
    GenerationRequest,
    PresentationRequest,
    RegenerateItemRequest,
)
from lessonforge.models.items import TrackedItem
from lessonforge.models.worksheet import Presentation, RegeneratedItem, Worksheet
from lessonforge.prompts.worksheet_generation import (
    build_presentation_prompts,
    build_regenerate_prompt,
    build_system_prompt,
    build_user_prompt,
)
from lessonforge.services.agent_validator import AgentValidator
from lessonforge.services.ai import AIService, select_model, select_presentation_model
from lessonforge.services.assembler import assemble_worksheet, convert_single_item
from lessonforge.services.classifier import classify
from lessonforge.services.extractor import extract_items, extract_json
from lessonforge.services.presentation import normalize_presentation
from lessonforge.services.reconciler import ShortfallReconciler
from lessonforge.services.telemetry import emit_event
from lessonforge.services.worksheet_formats import get_target_counts, resolve_task_types
from lessonforge.utils.item_validator import validate_items
from lessonforge.utils.progress import ProgressCallback, ProgressReporter

logger = logging.getLogger("lessonforge.orchestrator")

WORKSHEET_MAX_TOKENS = 8000
WORKSHEET_TEMPERATURE = 0.5
REGENERATE_MAX_TOKENS = 2000
REGENERATE_TEMPERATURE = 0.5
PRESENTATION_MAX_TOKENS = 8000
PRESENTATION_TEMPERATURE = 0.6
# first call below this share of the target raises a shortfall alert
LOW_OUTPUT_RATIO = 0.8


class GenerationOrchestrator:
    """Glue between the prompt builders, the model and the validation stages.

    Collaborators are injected so tests can script the model; by default they
    are all built around one AIService.
    """

    def __init__(
        self,
        ai: AIService | None = None,
        settings: Settings | None = None,
        reconciler: ShortfallReconciler | None = None,
        agent_validator: AgentValidator | None = None,
        validate=validate_items,
    ):
        self.settings = settings or get_settings()
        self.ai = ai or AIService(settings=self.settings)
        self.reconciler = reconciler or ShortfallReconciler(self.ai, self.settings)
        self.agent_validator = agent_validator or AgentValidator(self.ai, self.settings)
        self.validate = validate

    # ── Worksheets ────────────────────────────────────────────────────────

    async def generate_worksheet(
        self,
        request: GenerationRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Worksheet:
        started = time.time()
        progress = ProgressReporter(on_progress)
        await progress.report(5)

        targets = get_target_counts(request.format, request.variant_index)
        task_types = resolve_task_types(request.format, request.task_types, targets)
        logger.info(
            "[orchestrator] worksheet subject=%s grade=%s format=%s variant=%s targets=%s+%s types=%s",
            request.subject, request.grade, request.format, request.variant_index,
            targets.selection_count, targets.open_count, ",".join(task_types),
        )

        system_prompt = build_system_prompt(request.subject, request.grade, request.difficulty)
        user_prompt = build_user_prompt(request, task_types, targets)
        await progress.report(15)

        model = select_model(request.is_paid, self.settings)
        try:
            raw = await self.ai.invoke(
                system_prompt,
                user_prompt,
                model=model,
                max_tokens=WORKSHEET_MAX_TOKENS,
                temperature=WORKSHEET_TEMPERATURE,
                label="worksheet",
            )
        except ServiceError as exc:
            logger.error("[orchestrator] worksheet call failed (model=%s): %s", model, exc)
            raise AIError() from exc
        await progress.report(60)

        try:
            payload = extract_json(raw)
        except ParseError as exc:
            logger.error("[orchestrator] worksheet response unparseable (%d chars): %s", len(raw or ""), exc)
            raise AIError() from exc

        items = extract_items(payload)
        tracked = [TrackedItem(i, item) for i, item in enumerate(items)]
        selection, open_items = classify(tracked)
        await progress.report(75)
        logger.info(
            "[orchestrator] first call: %d items (selection=%d open=%d), expected %d",
            len(items), len(selection), len(open_items), targets.total,
        )

        outcome = await self.reconciler.reconcile(selection, open_items, targets, request, task_types)
        selection, open_items = outcome.selection_items, outcome.open_items

        selection, open_items = self._drop_invalid(selection, open_items, request)
        selection_payloads, open_payloads = await self._agent_review(selection, open_items, request)

        worksheet = assemble_worksheet(selection_payloads, open_payloads, request, targets)
        await progress.report(90)

        if targets.total and len(items) < targets.total * LOW_OUTPUT_RATIO:
            emit_event(
                "generation_shortfall_alert",
                subject=request.subject,
                grade=request.grade,
                topic=request.topic,
                received=len(items),
                expected=targets.total,
                score=round(len(items) / targets.total * 10),
            )

        logger.info(
            "[orchestrator] worksheet done in %dms: %d test questions, %d assignments",
            int((time.time() - started) * 1000), len(worksheet.test_questions), len(worksheet.assignments),
        )
        await progress.report(95)
        return worksheet

    def _drop_invalid(self, selection: list, open_items: list, request: GenerationRequest):
        """Remove every item the deterministic validator flags with an error."""
        combined = selection + open_items
        result = self.validate(combined, request.subject, request.grade)

        for warning in result.warnings:
            logger.info("[orchestrator] validation warning [%d] %s: %s",
                        warning.item_index, warning.code, warning.message)
        if result.valid:
            return selection, open_items

        for error in result.errors:
            logger.warning("[orchestrator] validation error [%d] %s (%s): %s",
                           error.item_index, error.code, error.field, error.message)
        bad_ordinals = {
            combined[index].ordinal
            for index in result.error_indices
            if 0 <= index < len(combined)
        }
        kept_selection = [item for item in selection if item.ordinal not in bad_ordinals]
        kept_open = [item for item in open_items if item.ordinal not in bad_ordinals]
        logger.info(
            "[orchestrator] removed %d selection + %d open invalid items",
            len(selection) - len(kept_selection), len(open_items) - len(kept_open),
        )
        return kept_selection, kept_open

    async def _agent_review(self, selection: list, open_items: list, request: GenerationRequest):
        """Run the agent stage; its output length is authoritative for the split."""
        selection_payloads = [item.payload for item in selection]
        open_payloads = [item.payload for item in open_items]
        if not self.settings.enable_agent_validation or not (selection_payloads or open_payloads):
            return selection_payloads, open_payloads

        split = len(selection_payloads)
        context = GenerationContext(
            subject=request.subject,
            grade=request.grade,
            topic=request.topic,
            difficulty=request.difficulty,
        )
        try:
            result = await self.agent_validator.validate(
                selection_payloads + open_payloads, context, auto_fix=True
            )
        except Exception:
            logger.error("[orchestrator] agent validation failed, keeping items as they are", exc_info=True)
            return selection_payloads, open_payloads

        if result.problem_items:
            fixed = sum(1 for f in result.fix_results if f.success)
            logger.warning("[orchestrator] agent validation: %d problem items, %d fixed",
                           len(result.problem_items), fixed)
        else:
            logger.info("[orchestrator] agent validation: all items OK")

        final = list(result.fixed_items)
        return final[:split], final[split:]

    # ── Single item ───────────────────────────────────────────────────────

    async def regenerate_single_item(self, request: RegenerateItemRequest) -> RegeneratedItem:
        model = select_model(request.is_paid, self.settings)
        try:
            raw = await self.ai.invoke(
                build_system_prompt(request.subject, request.grade, request.difficulty),
                build_regenerate_prompt(request),
                model=model,
                max_tokens=REGENERATE_MAX_TOKENS,
                temperature=REGENERATE_TEMPERATURE,
                label="regenerate",
            )
            items = extract_items(extract_json(raw))
        except (ServiceError, ParseError) as exc:
            logger.error("[orchestrator] regenerate failed (model=%s): %s", model, exc)
            raise AIError() from exc

        if not items:
            logger.error("[orchestrator] regenerate response has no task")
            raise AIError()
        item = items[0]
        item.setdefault("type", request.task_type)
        return convert_single_item(item, request.is_test)

    # ── Presentations ─────────────────────────────────────────────────────

    async def generate_presentation(
        self,
        request: PresentationRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Presentation:
        progress = ProgressReporter(on_progress)
        await progress.report(5)

        system_prompt, user_prompt = build_presentation_prompts(request)
        await progress.report(15)

        model = select_presentation_model(request.is_paid, self.settings)
        try:
            raw = await self.ai.invoke(
                system_prompt,
                user_prompt,
                model=model,
                max_tokens=PRESENTATION_MAX_TOKENS,
                temperature=PRESENTATION_TEMPERATURE,
                label="presentation",
            )
        except ServiceError as exc:
            logger.error("[orchestrator] presentation call failed (model=%s): %s", model, exc)
            raise AIError() from exc
        await progress.report(65)

        try:
            presentation, _warnings = normalize_presentation(extract_json(raw), request.slide_count)
        except ParseError as exc:
            logger.error("[orchestrator] presentation response rejected: %s", exc)
            raise AIError() from exc
        await progress.report(75)

        logger.info("[orchestrator] presentation %r: %d slides", presentation.title, len(presentation.slides))
        await progress.report(95)
        return presentation


def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator()
