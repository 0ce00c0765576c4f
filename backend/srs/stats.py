"""Aggregate statistics over cards and review history."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from backend.config import utcnow
from backend.srs.fsrs import Rating
from backend.srs.memory import Algorithm, CardStatus, MemoryCard, is_due, mastery_level, round_half_up

_RATING_VALUES = {rating.value for rating in Rating}


@dataclass
class CollectionStats:
    total_cards: int = 0
    new_cards: int = 0
    learning_cards: int = 0  # Includes FSRS relearning
    review_cards: int = 0
    mastered_cards: int = 0
    average_ef: float = 0.0  # SM-2 cards only
    average_mastery: float = 0.0
    due_today: int = 0


@dataclass
class ReviewStats:
    total_reviews: int = 0
    accuracy: int = 0  # Percent of reviews not rated Again
    average_time: int = 0  # Milliseconds
    rating_distribution: dict[str, int] = field(
        default_factory=lambda: {rating.name.lower(): 0 for rating in Rating}
    )


def collection_stats(cards: Iterable[MemoryCard], now: datetime | None = None) -> CollectionStats:
    """Count cards per status and average their easiness and mastery."""
    now = now or utcnow()
    stats = CollectionStats()
    total_ef = 0.0
    sm2_cards = 0
    total_mastery = 0

    for card in cards:
        stats.total_cards += 1
        if card.status is CardStatus.NEW:
            stats.new_cards += 1
        elif card.status in (CardStatus.LEARNING, CardStatus.RELEARNING):
            stats.learning_cards += 1
        elif card.status is CardStatus.REVIEW:
            stats.review_cards += 1
        elif card.status is CardStatus.MASTERED:
            stats.mastered_cards += 1

        if card.algorithm is Algorithm.SM2:
            total_ef += card.easiness_factor
            sm2_cards += 1
        total_mastery += mastery_level(card)
        if is_due(card, now):
            stats.due_today += 1

    if sm2_cards:
        stats.average_ef = total_ef / sm2_cards
    if stats.total_cards:
        stats.average_mastery = total_mastery / stats.total_cards
    return stats


def review_stats(reviews: Iterable[tuple[int, int]]) -> ReviewStats:
    """Summarize FSRS reviews given as (rating, time_ms) pairs."""
    stats = ReviewStats()
    correct = 0
    total_time = 0

    for rating, time_ms in reviews:
        stats.total_reviews += 1
        if rating > Rating.AGAIN:
            correct += 1
        total_time += time_ms or 0
        if rating in _RATING_VALUES:
            stats.rating_distribution[Rating(rating).name.lower()] += 1

    if stats.total_reviews:
        stats.accuracy = round_half_up(correct / stats.total_reviews * 100)
        stats.average_time = round_half_up(total_time / stats.total_reviews)
    return stats
