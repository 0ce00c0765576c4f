"""API routes for submitting reviews."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    CardResponse,
    FSRSReviewRequest,
    IntervalSuggestionResponse,
    ReviewResponse,
    SM2BatchRequest,
    SM2ReviewRequest,
    StudyAdviceResponse,
)
from backend.database import get_session
from backend.srs.errors import AlgorithmMismatchError, InvalidChoiceError, ItemNotFoundError
from backend.srs.memory import Algorithm, MemoryCard
from backend.srs.session import (
    DUE_CARDS_LIMIT,
    ReviewOutcome,
    batch_submit_reviews,
    load_due_cards,
    preview_fsrs,
    submit_review,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


def card_response(card: MemoryCard) -> CardResponse:
    is_fsrs = card.algorithm is Algorithm.FSRS
    return CardResponse(
        word_id=int(card.item_id),
        algorithm=card.algorithm.value,
        status=card.status.value,
        repetitions=card.repetitions,
        lapses=card.lapses,
        interval=card.interval,
        easiness_factor=None if is_fsrs else card.easiness_factor,
        difficulty=card.difficulty if is_fsrs else None,
        stability=card.stability if is_fsrs else None,
        retrievability=card.retrievability if is_fsrs else None,
        due=card.due,
        last_review=card.last_review,
    )


def _review_response(outcome: ReviewOutcome) -> ReviewResponse:
    return ReviewResponse(
        card=card_response(outcome.card),
        mastery_level=outcome.mastery_level,
        next_due=outcome.card.due,
    )


async def _submit(db: AsyncSession, algorithm: Algorithm, request, signal) -> ReviewResponse:
    try:
        outcome = await submit_review(
            db,
            learner_id=request.learner_id,
            wordbook_id=request.wordbook_id,
            word_id=request.word_id,
            signal=signal,
            algorithm=algorithm,
            time_ms=request.time_ms,
        )
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AlgorithmMismatchError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidChoiceError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _review_response(outcome)


@router.post("/sm2", response_model=ReviewResponse)
async def review_sm2(
    request: SM2ReviewRequest,
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Submit a know/hint/unknown answer for an SM-2 card."""
    return await _submit(db, Algorithm.SM2, request, request.choice)


@router.post("/sm2/batch", response_model=list[ReviewResponse])
async def review_sm2_batch(
    request: SM2BatchRequest,
    db: AsyncSession = Depends(get_session),
) -> list[ReviewResponse]:
    """Submit many SM-2 answers at once; each is saved independently."""
    outcomes = await batch_submit_reviews(
        db,
        request.learner_id,
        request.wordbook_id,
        [(item.word_id, item.choice) for item in request.answers],
        algorithm=Algorithm.SM2,
    )
    return [_review_response(outcome) for outcome in outcomes]


@router.post("/fsrs", response_model=ReviewResponse)
async def review_fsrs(
    request: FSRSReviewRequest,
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Submit an Again/Hard/Good/Easy rating for an FSRS card."""
    return await _submit(db, Algorithm.FSRS, request, request.rating)


@router.get(
    "/fsrs/preview/{learner_id}/{wordbook_id}/{word_id}",
    response_model=StudyAdviceResponse,
)
async def review_fsrs_preview(
    learner_id: int,
    wordbook_id: str,
    word_id: int,
    db: AsyncSession = Depends(get_session),
) -> StudyAdviceResponse:
    """Preview the outcome of each FSRS rating without saving anything."""
    try:
        advice = await preview_fsrs(db, learner_id, wordbook_id, word_id)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AlgorithmMismatchError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    return StudyAdviceResponse(
        difficulty=advice.difficulty,
        retrievability=advice.retrievability,
        suggestions={
            name: IntervalSuggestionResponse(
                interval=suggestion.interval,
                due=suggestion.due,
                stability=suggestion.stability,
            )
            for name, suggestion in advice.suggestions.items()
        },
    )


@router.get("/due/{learner_id}/{wordbook_id}", response_model=list[CardResponse])
async def review_due_cards(
    learner_id: int,
    wordbook_id: str,
    limit: int = DUE_CARDS_LIMIT,
    algorithm: Algorithm | None = None,
    db: AsyncSession = Depends(get_session),
) -> list[CardResponse]:
    """List the cards due for review, most overdue first."""
    cards = await load_due_cards(db, learner_id, wordbook_id, limit=limit, algorithm=algorithm)
    return [card_response(card) for card in cards]
