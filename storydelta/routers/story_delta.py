"""Story delta planning REST endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from storydelta.errors import PathAllocationError, PlanPreconditionError
from storydelta.schemas import StoryDeltaOptions, StoryDeltaResult
from storydelta.services.delta_planner import ModelCallback, build_story_delta_plan
from storydelta.services.model_service import GeminiModelCaller
from storydelta.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()

_model_caller: GeminiModelCaller | None = None


def get_model_caller() -> ModelCallback:
    """Shared Gemini caller; overridden in tests via ``app.dependency_overrides``."""
    global _model_caller
    if _model_caller is None:
        _model_caller = GeminiModelCaller()
    return _model_caller


@router.post("/story-delta/plan", response_model=StoryDeltaResult, response_model_by_alias=True)
async def plan_story_delta(
    request: StoryDeltaOptions,
    call_model: ModelCallback = Depends(get_model_caller),
):
    try:
        return await build_story_delta_plan(request, call_model)
    except PlanPreconditionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PathAllocationError as e:
        logger.error("path_allocation_failed | stem=%s", e.stem)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/health")
async def health():
    return {"status": "ok"}
