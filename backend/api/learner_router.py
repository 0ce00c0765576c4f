"""API routes for learner settings."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import BudgetRequest, BudgetResponse
from backend.database import get_session
from backend.srs.errors import LearnerNotFoundError
from backend.srs.plan import PRESETS, PlanSettings
from backend.srs.session import learner_budget, save_learner_budget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/learners", tags=["learners"])


def budget_response(budget: PlanSettings) -> BudgetResponse:
    return BudgetResponse(
        daily_new_words=budget.daily_new_words,
        daily_review_words=budget.daily_review_words,
        daily_target=budget.daily_target,
    )


@router.get("/presets", response_model=dict[str, BudgetResponse])
async def list_presets() -> dict[str, BudgetResponse]:
    """The named daily budget presets."""
    return {name: budget_response(preset) for name, preset in PRESETS.items()}


@router.get("/{learner_id}/budget", response_model=BudgetResponse)
async def get_budget(
    learner_id: int,
    db: AsyncSession = Depends(get_session),
) -> BudgetResponse:
    """Get the learner's daily budgets (configured defaults if never set)."""
    try:
        budget = await learner_budget(db, learner_id)
    except LearnerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return budget_response(budget)


@router.put("/{learner_id}/budget", response_model=BudgetResponse)
async def update_budget(
    learner_id: int,
    request: BudgetRequest,
    db: AsyncSession = Depends(get_session),
) -> BudgetResponse:
    """Change the learner's daily budgets; today's plan is left as it is."""
    if request.preset:
        chosen = PlanSettings.preset(request.preset)
    elif request.daily_new_words is not None or request.daily_review_words is not None:
        chosen = PlanSettings.validated(request.daily_new_words, request.daily_review_words)
    else:
        raise HTTPException(status_code=422, detail="Give a preset or at least one daily budget")

    try:
        budget = await save_learner_budget(db, learner_id, chosen)
    except LearnerNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return budget_response(budget)
