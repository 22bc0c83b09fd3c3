"""
Shortfall Reconciler: tops up the item families the first model call left short.

A bounded state machine: every attempt recomputes the shortfall, picks one
item type per short family, asks the model for exactly the missing items and
appends whatever comes back. It stops as soon as both families reach their
targets or the attempt budget runs out. Running out is not an error; the
caller gets the partial counts.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from lessonforge.core.config import Settings, get_settings
from lessonforge.models.generation import GenerationRequest, TargetCounts
from lessonforge.models.items import TrackedItem
from lessonforge.prompts.worksheet_generation import build_backfill_prompt, build_system_prompt
from lessonforge.services.ai import AIService, select_model
from lessonforge.services.classifier import classify
from lessonforge.services.extractor import extract_items, extract_json
from lessonforge.services.task_types import OPEN_TYPE_IDS, SELECTION_TYPE_IDS, types_of_family
from lessonforge.services.telemetry import emit_event

logger = logging.getLogger("lessonforge.reconciler")

BACKFILL_MAX_TOKENS = 4000
BACKFILL_TEMPERATURE = 0.4


class ReconcileState(str, Enum):
    NEEDS_SELECTION = "needs_selection"
    NEEDS_OPEN = "needs_open"
    NEEDS_BOTH = "needs_both"
    SATISFIED = "satisfied"


def reconcile_state(missing_selection: int, missing_open: int) -> ReconcileState:
    if missing_selection > 0 and missing_open > 0:
        return ReconcileState.NEEDS_BOTH
    if missing_selection > 0:
        return ReconcileState.NEEDS_SELECTION
    if missing_open > 0:
        return ReconcileState.NEEDS_OPEN
    return ReconcileState.SATISFIED


@dataclass(frozen=True)
class BackfillPlan:
    attempt: int
    selection_type: Optional[str]
    selection_count: int
    open_type: Optional[str]
    open_count: int

    @property
    def total(self) -> int:
        return self.selection_count + self.open_count

    @property
    def wanted(self) -> list[tuple[str, int]]:
        out = []
        if self.selection_type and self.selection_count > 0:
            out.append((self.selection_type, self.selection_count))
        if self.open_type and self.open_count > 0:
            out.append((self.open_type, self.open_count))
        return out


@dataclass
class BackfillAttempt:
    attempt: int
    state: ReconcileState
    requested_selection: int
    requested_open: int
    received_selection: int = 0
    received_open: int = 0
    error: Optional[str] = None


@dataclass
class ReconcileOutcome:
    selection_items: list
    open_items: list
    attempts: list = field(default_factory=list)   # BackfillAttempt
    missing_selection: int = 0
    missing_open: int = 0

    @property
    def satisfied(self) -> bool:
        return self.missing_selection <= 0 and self.missing_open <= 0


def plan_backfill(attempt: int, missing_selection: int, missing_open: int, task_types) -> BackfillPlan:
    """Choose one type per short family, rotating through the family's types per attempt."""
    selection_type = open_type = None
    if missing_selection > 0:
        types = types_of_family(task_types, "selection") or list(SELECTION_TYPE_IDS)
        selection_type = types[(attempt - 1) % len(types)]
    if missing_open > 0:
        types = types_of_family(task_types, "open") or list(OPEN_TYPE_IDS)
        open_type = types[(attempt - 1) % len(types)]
    return BackfillPlan(
        attempt=attempt,
        selection_type=selection_type,
        selection_count=max(0, missing_selection),
        open_type=open_type,
        open_count=max(0, missing_open),
    )


class ShortfallReconciler:
    def __init__(
        self,
        ai: AIService,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ai = ai
        self.settings = settings or get_settings()
        self._sleep = sleep

    async def reconcile(
        self,
        selection: list[TrackedItem],
        open_items: list[TrackedItem],
        targets: TargetCounts,
        request: GenerationRequest,
        task_types,
    ) -> ReconcileOutcome:
        selection = list(selection)
        open_items = list(open_items)
        outcome = ReconcileOutcome(selection_items=selection, open_items=open_items)
        outcome.missing_selection = targets.selection_count - len(selection)
        outcome.missing_open = targets.open_count - len(open_items)
        if outcome.satisfied:
            return outcome

        max_attempts = self.settings.max_backfill_attempts
        next_ordinal = 1 + max((item.ordinal for item in selection + open_items), default=-1)
        model = select_model(request.is_paid, self.settings)
        system_prompt = build_system_prompt(request.subject, request.grade, request.difficulty)

        for attempt in range(1, max_attempts + 1):
            missing_selection = targets.selection_count - len(selection)
            missing_open = targets.open_count - len(open_items)
            state = reconcile_state(missing_selection, missing_open)
            if state is ReconcileState.SATISFIED:
                break

            plan = plan_backfill(attempt, missing_selection, missing_open, task_types)
            record = BackfillAttempt(attempt, state, plan.selection_count, plan.open_count)
            outcome.attempts.append(record)
            logger.info(
                "[reconciler] attempt %d/%d state=%s requesting selection=%d (%s) open=%d (%s)",
                attempt, max_attempts, state.value,
                plan.selection_count, plan.selection_type, plan.open_count, plan.open_type,
            )

            delay = self.settings.backfill_backoff_seconds * 2 ** (attempt - 1)
            if delay > 0:
                await self._sleep(delay)

            try:
                raw = await self.ai.invoke(
                    system_prompt,
                    build_backfill_prompt(request, plan.wanted),
                    model=model,
                    max_tokens=BACKFILL_MAX_TOKENS,
                    temperature=BACKFILL_TEMPERATURE,
                    label="backfill",
                )
                items = extract_items(extract_json(raw))
            except Exception as exc:
                record.error = f"{exc.__class__.__name__}: {exc}"
                logger.error("[reconciler] attempt %d/%d failed: %s", attempt, max_attempts, record.error,
                             exc_info=True)
                continue

            tracked = [TrackedItem(next_ordinal + i, item) for i, item in enumerate(items)]
            next_ordinal += len(tracked)
            new_selection, new_open = classify(tracked)
            selection.extend(new_selection)
            open_items.extend(new_open)
            record.received_selection = len(new_selection)
            record.received_open = len(new_open)
            logger.info(
                "[reconciler] attempt %d/%d requested %d, got %d (selection=%d open=%d) totals selection=%d open=%d",
                attempt, max_attempts, plan.total, len(tracked), len(new_selection), len(new_open),
                len(selection), len(open_items),
            )

        outcome.missing_selection = targets.selection_count - len(selection)
        outcome.missing_open = targets.open_count - len(open_items)
        if outcome.satisfied:
            logger.info("[reconciler] targets reached after %d backfill rounds", len(outcome.attempts))
        else:
            logger.warning(
                "[reconciler] after %d backfill rounds still missing selection=%d open=%d",
                len(outcome.attempts), max(0, outcome.missing_selection), max(0, outcome.missing_open),
            )
        emit_event(
            "backfill_summary",
            topic=request.topic,
            rounds=len(outcome.attempts),
            failed_rounds=sum(1 for a in outcome.attempts if a.error),
            missing_selection=max(0, outcome.missing_selection),
            missing_open=max(0, outcome.missing_open),
        )
        return outcome
