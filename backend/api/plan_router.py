"""API routes for daily study plans."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    DailyPlanResponse,
    PlanAnswerRequest,
    PlanCreateRequest,
    PlanDaySummaryResponse,
    PlanProgressResponse,
    PlanStatsResponse,
)
from backend.config import utcnow
from backend.database import get_session
from backend.srs.errors import (
    PastPlanError,
    PlanConflictError,
    PlanNotFoundError,
    UnknownPlanItemError,
)
from backend.srs.plan import DailyPlan, PlanSettings
from backend.srs.progress import current_progress
from backend.srs.session import (
    get_daily_plan,
    get_or_create_daily_plan,
    load_plan_history,
    record_plan_answer,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plans", tags=["plans"])


def plan_response(plan: DailyPlan) -> DailyPlanResponse:
    return DailyPlanResponse(
        learner_id=plan.learner_id,
        wordbook_id=plan.wordbook_id,
        plan_date=plan.plan_date,
        planned_items=[int(item) for item in plan.planned_items],
        total_count=plan.total_count,
        new_items_count=plan.new_items_count,
        review_items_count=plan.review_items_count,
        completed_items=[int(item) for item in plan.completed_items],
        completed_count=plan.completed_count,
        current_index=plan.current_index,
        stats=PlanStatsResponse(
            known_count=plan.stats.known_count,
            unknown_count=plan.stats.unknown_count,
            study_time=plan.stats.study_time,
            accuracy=plan.stats.accuracy,
        ),
        is_completed=plan.is_completed,
        completed_at=plan.completed_at,
    )


@router.post("/{learner_id}/{wordbook_id}", response_model=DailyPlanResponse)
async def plan_get_or_create(
    learner_id: int,
    wordbook_id: str,
    request: PlanCreateRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> DailyPlanResponse:
    """Return today's plan, creating it on the first request of the day."""
    plan_settings = None
    if request is not None:
        if request.preset:
            plan_settings = PlanSettings.preset(request.preset)
        elif request.daily_new_words is not None or request.daily_review_words is not None:
            plan_settings = PlanSettings.validated(request.daily_new_words, request.daily_review_words)

    plan = await get_or_create_daily_plan(db, learner_id, wordbook_id, plan_settings=plan_settings)
    return plan_response(plan)


@router.get("/{learner_id}/{wordbook_id}/progress", response_model=PlanProgressResponse)
async def plan_progress(
    learner_id: int,
    wordbook_id: str,
    db: AsyncSession = Depends(get_session),
) -> PlanProgressResponse:
    """Return the next word and completion percentage for today's plan."""
    try:
        plan = await get_daily_plan(db, learner_id, wordbook_id, utcnow().date())
    except PlanNotFoundError:
        plan = None

    progress = current_progress(plan)
    return PlanProgressResponse(
        plan=plan_response(plan) if plan else None,
        next_item=int(progress.next_item) if progress.next_item is not None else None,
        progress=progress.progress,
        is_completed=progress.is_completed,
    )


@router.post("/{learner_id}/{wordbook_id}/answer", response_model=DailyPlanResponse)
async def plan_answer(
    learner_id: int,
    wordbook_id: str,
    request: PlanAnswerRequest,
    db: AsyncSession = Depends(get_session),
) -> DailyPlanResponse:
    """Record an answered word against today's plan."""
    try:
        plan = await record_plan_answer(
            db,
            learner_id,
            wordbook_id,
            request.word_id,
            known=request.known,
            time_spent=request.time_spent,
        )
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UnknownPlanItemError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except (PlanConflictError, PastPlanError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return plan_response(plan)


@router.get("/{learner_id}/{wordbook_id}/history", response_model=list[PlanDaySummaryResponse])
async def plan_history(
    learner_id: int,
    wordbook_id: str,
    days: int = 7,
    db: AsyncSession = Depends(get_session),
) -> list[PlanDaySummaryResponse]:
    """Summaries of the plans from the last ``days`` days."""
    summaries = await load_plan_history(db, learner_id, wordbook_id, days=days)
    return [
        PlanDaySummaryResponse(
            plan_date=s.plan_date,
            total_planned=s.total_planned,
            total_completed=s.total_completed,
            accuracy=s.accuracy,
            study_time=s.study_time,
            is_target_reached=s.is_target_reached,
        )
        for s in summaries
    ]
