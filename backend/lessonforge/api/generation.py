"""Generation endpoints: worksheets, single-task regeneration and presentations.

Handlers only validate the request body and hand it to the orchestrator.
AIError is turned into the 502 error body by the app-level handler in main.py.
"""
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lessonforge.models.generation import GenerationRequest, PresentationRequest, RegenerateItemRequest
from lessonforge.models.worksheet import Presentation, RegeneratedItem, Worksheet
from lessonforge.services.orchestrator import GenerationOrchestrator, get_orchestrator
from lessonforge.services.telemetry import instrument

router = APIRouter(prefix="/api", tags=["generation"])


class WorksheetResponse(BaseModel):
    status: Literal["ok"] = "ok"
    worksheet: Worksheet


class RegeneratedItemResponse(BaseModel):
    status: Literal["ok"] = "ok"
    item: RegeneratedItem


class PresentationResponse(BaseModel):
    status: Literal["ok"] = "ok"
    presentation: Presentation


@router.post("/generate", response_model=WorksheetResponse)
@instrument(route="/api/generate", version="v1")
async def generate_worksheet(
    request: GenerationRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    worksheet = await orchestrator.generate_worksheet(request)
    return WorksheetResponse(worksheet=worksheet)


@router.post("/generate/regenerate-task", response_model=RegeneratedItemResponse)
@instrument(route="/api/generate/regenerate-task", version="v1")
async def regenerate_task(
    request: RegenerateItemRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    item = await orchestrator.regenerate_single_item(request)
    return RegeneratedItemResponse(item=item)


@router.post("/presentations/generate", response_model=PresentationResponse)
@instrument(route="/api/presentations/generate", version="v1")
async def generate_presentation(
    request: PresentationRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    presentation = await orchestrator.generate_presentation(request)
    return PresentationResponse(presentation=presentation)
