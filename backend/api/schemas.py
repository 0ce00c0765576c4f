"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

# --- Reviews ---


class CardResponse(BaseModel):
    """A card's scheduling state after a review."""

    word_id: int
    algorithm: str
    status: str
    repetitions: int
    lapses: int
    interval: int
    easiness_factor: float | None = None  # SM-2 only
    difficulty: float | None = None  # FSRS only
    stability: float | None = None  # FSRS only
    retrievability: float | None = None  # FSRS only
    due: datetime
    last_review: datetime | None


class SM2ReviewRequest(BaseModel):
    """An SM-2 answer: know, hint or unknown."""

    learner_id: int
    wordbook_id: str = Field(min_length=1)
    word_id: int
    choice: Literal["know", "hint", "unknown"]
    time_ms: int = Field(default=0, ge=0)


class SM2BatchItem(BaseModel):
    word_id: int
    choice: Literal["know", "hint", "unknown"]


class SM2BatchRequest(BaseModel):
    learner_id: int
    wordbook_id: str = Field(min_length=1)
    answers: list[SM2BatchItem]


class FSRSReviewRequest(BaseModel):
    """An FSRS answer: 1=Again, 2=Hard, 3=Good, 4=Easy."""

    learner_id: int
    wordbook_id: str = Field(min_length=1)
    word_id: int
    rating: int = Field(ge=1, le=4)
    time_ms: int = Field(default=0, ge=0)


class ReviewResponse(BaseModel):
    card: CardResponse
    mastery_level: int
    next_due: datetime


class IntervalSuggestionResponse(BaseModel):
    interval: int
    due: datetime
    stability: float


class StudyAdviceResponse(BaseModel):
    """What each FSRS rating would do to a card."""

    difficulty: str
    retrievability: int | None
    suggestions: dict[str, IntervalSuggestionResponse]


# --- Daily plans ---


class PlanCreateRequest(BaseModel):
    """Optional per-request overrides of the daily budgets."""

    daily_new_words: int | None = None
    daily_review_words: int | None = None
    preset: Literal["relaxed", "standard", "intensive"] | None = None


class PlanStatsResponse(BaseModel):
    known_count: int
    unknown_count: int
    study_time: int
    accuracy: float


class DailyPlanResponse(BaseModel):
    learner_id: int
    wordbook_id: str
    plan_date: date
    planned_items: list[int]
    total_count: int
    new_items_count: int
    review_items_count: int
    completed_items: list[int]
    completed_count: int
    current_index: int
    stats: PlanStatsResponse
    is_completed: bool
    completed_at: datetime | None


class PlanAnswerRequest(BaseModel):
    word_id: int
    known: bool
    time_spent: int = Field(default=0, ge=0)  # Milliseconds


class PlanProgressResponse(BaseModel):
    plan: DailyPlanResponse | None
    next_item: int | None
    progress: float
    is_completed: bool


class PlanDaySummaryResponse(BaseModel):
    plan_date: date
    total_planned: int
    total_completed: int
    accuracy: float
    study_time: int
    is_target_reached: bool


# --- Learners ---


class BudgetRequest(BaseModel):
    """New daily budgets, either explicit counts or a named preset."""

    daily_new_words: int | None = None
    daily_review_words: int | None = None
    preset: Literal["relaxed", "standard", "intensive"] | None = None


class BudgetResponse(BaseModel):
    daily_new_words: int
    daily_review_words: int
    daily_target: int


# --- Stats ---


class LearnerStatsResponse(BaseModel):
    """Card and review statistics for one wordbook."""

    total_cards: int
    new_cards: int
    learning_cards: int
    review_cards: int
    mastered_cards: int
    average_ef: float
    average_mastery: float
    due_today: int
    total_reviews: int
    accuracy: int
    average_time: int
    rating_distribution: dict[str, int]
