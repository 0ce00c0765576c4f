"""Per-item memory state shared by the SM-2 and FSRS schedulers.

A ``MemoryCard`` carries the fields of both algorithms; the ``algorithm`` tag
says which scheduler produced it and therefore which fields are meaningful:

- SM-2: ``repetitions`` (consecutive successes), ``easiness_factor``, ``interval``.
- FSRS: ``repetitions`` (total reviews), ``difficulty``, ``stability``,
  ``retrievability``, ``interval`` (scheduled days), ``elapsed_days``.

Both use ``lapses``, ``status``, ``due`` and ``last_review``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from backend.config import utcnow

ItemId = int | str

MIN_EF = 1.3
INITIAL_EF = 2.5
MAX_EF_FOR_MASTERY = 4.0

# Legacy stage-based records: stage index -> interval in days
LEGACY_STAGE_INTERVALS = [0, 1, 6, 13, 30, 60, 120]


class Algorithm(Enum):
    SM2 = "sm2"
    FSRS = "fsrs"


class CardStatus(Enum):
    """Where a card sits in its learning lifecycle."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"  # FSRS only
    MASTERED = "mastered"  # SM-2 only


# Status -> (legacy stage, legacy status name)
_LEGACY_STATUS = {
    CardStatus.NEW: (0, "new"),
    CardStatus.LEARNING: (1, "learning"),
    CardStatus.RELEARNING: (1, "learning"),
    CardStatus.REVIEW: (3, "review"),
    CardStatus.MASTERED: (6, "graduated"),
}

_STATUS_FROM_LEGACY = {
    "new": CardStatus.NEW,
    "learning": CardStatus.LEARNING,
    "review": CardStatus.REVIEW,
    "reviewing": CardStatus.REVIEW,
    "graduated": CardStatus.MASTERED,
    "mastered": CardStatus.MASTERED,
}

# Base mastery percentage per status
_MASTERY_WEIGHT = {
    CardStatus.NEW: 0,
    CardStatus.LEARNING: 25,
    CardStatus.RELEARNING: 25,
    CardStatus.REVIEW: 60,
    CardStatus.MASTERED: 100,
}


@dataclass
class MemoryCard:
    """Scheduling state for one learner-item pair."""

    item_id: ItemId
    algorithm: Algorithm = Algorithm.SM2
    repetitions: int = 0
    easiness_factor: float = INITIAL_EF
    difficulty: float = 0.0
    stability: float = 0.0
    retrievability: float = 0.0
    interval: int = 0  # Days until the next review
    elapsed_days: float = 0.0
    lapses: int = 0
    status: CardStatus = CardStatus.NEW
    due: datetime = field(default_factory=utcnow)
    last_review: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_new(self) -> bool:
        """Return True if the card has never been reviewed."""
        return self.last_review is None


def sm2_status(repetitions: int) -> CardStatus:
    """Map an SM-2 repetition count to its status bucket."""
    if repetitions <= 0:
        return CardStatus.NEW
    if repetitions < 3:
        return CardStatus.LEARNING
    if repetitions < 6:
        return CardStatus.REVIEW
    return CardStatus.MASTERED


def is_due(card: MemoryCard, now: datetime | None = None) -> bool:
    """Return True if the card is eligible for review at ``now``."""
    now = now or utcnow()
    return now >= card.due


def mastery_level(card: MemoryCard) -> int:
    """Estimate how well a card is known, 0-100.

    Status contributes a base weight; an SM-2 card earns up to 20 extra
    points as its easiness factor rises from 1.3 towards 4.0.
    """
    base = _MASTERY_WEIGHT.get(card.status, 0)
    bonus = 0.0
    if card.algorithm is Algorithm.SM2:
        bonus = min(20.0, (card.easiness_factor - MIN_EF) / (MAX_EF_FOR_MASTERY - MIN_EF) * 20)
    return min(100, round_half_up(base + bonus))


def stage_for_status(status: CardStatus) -> int:
    """Return the legacy stage number for a status."""
    return _LEGACY_STATUS[status][0]


def legacy_status_for(status: CardStatus) -> str:
    """Return the legacy status name (``graduated`` for mastered cards)."""
    return _LEGACY_STATUS[status][1]


def status_from_legacy(name: str | None) -> CardStatus:
    """Parse a legacy status name, defaulting to NEW for unknown values."""
    return _STATUS_FROM_LEGACY.get(name or "", CardStatus.NEW)


def card_from_legacy_record(record: dict[str, Any]) -> MemoryCard:
    """Build an SM-2 card from a stage-based record that predates SM-2 state.

    The easiness factor is estimated from the success rate (1.3 for a card
    that always failed, up to 3.0 for one that never did) and the interval
    is read off the legacy stage table, floored at one day once the card
    has any successes. Status is derived from the repetition count; the
    legacy status string is ignored.
    """
    stage = record.get("stage") or 0
    repetitions = max(0, record.get("successes") or stage)
    failures = record.get("failures") or 0

    success_rate = repetitions / (repetitions + failures) if repetitions > 0 else 0.0
    estimated_ef = MIN_EF + success_rate * 1.7
    interval = LEGACY_STAGE_INTERVALS[min(stage, len(LEGACY_STAGE_INTERVALS) - 1)]
    if repetitions > 0:
        interval = max(1, interval)

    now = utcnow()
    return MemoryCard(
        item_id=record["wordId"],
        algorithm=Algorithm.SM2,
        repetitions=repetitions,
        easiness_factor=estimated_ef,
        interval=interval,
        lapses=failures,
        status=sm2_status(repetitions),
        due=record.get("nextReview") or now,
        last_review=record.get("lastReview"),
        created_at=record.get("createdAt") or now,
        updated_at=record.get("updatedAt") or now,
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (Python's round() goes to even)."""
    return math.floor(value + 0.5)
