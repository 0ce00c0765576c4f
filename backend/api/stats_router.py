"""API routes for learner statistics."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import LearnerStatsResponse
from backend.database import get_session
from backend.srs.session import load_learner_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/{learner_id}/{wordbook_id}", response_model=LearnerStatsResponse)
async def get_learner_stats(
    learner_id: int,
    wordbook_id: str,
    db: AsyncSession = Depends(get_session),
) -> LearnerStatsResponse:
    """Get card and review statistics for a learner's wordbook."""
    cards, reviews = await load_learner_stats(db, learner_id, wordbook_id)
    return LearnerStatsResponse(
        total_cards=cards.total_cards,
        new_cards=cards.new_cards,
        learning_cards=cards.learning_cards,
        review_cards=cards.review_cards,
        mastered_cards=cards.mastered_cards,
        average_ef=round(cards.average_ef, 3),
        average_mastery=round(cards.average_mastery, 1),
        due_today=cards.due_today,
        total_reviews=reviews.total_reviews,
        accuracy=reviews.accuracy,
        average_time=reviews.average_time,
        rating_distribution=reviews.rating_distribution,
    )
