"""SM-2 (SuperMemo-2) scheduling.

The learner answers each card with one of three choices which map onto the
classic 0-5 quality scale:

- know -> 5: recalled without difficulty
- hint -> 3: recalled, but with effort
- unknown -> 1: not recalled

Reference: https://super-memory.com/english/ol/sm2.htm

Unlike textbook SM-2, a failed review (quality < 3) leaves the easiness
factor untouched; only the repetition count and interval are reset.
"""

import logging
import random
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum

from backend.config import utcnow
from backend.srs.errors import InvalidChoiceError
from backend.srs.memory import (
    INITIAL_EF,
    MIN_EF,
    Algorithm,
    CardStatus,
    ItemId,
    MemoryCard,
    round_half_up,
    sm2_status,
)

logger = logging.getLogger(__name__)

PASSING_QUALITY = 3
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6


class Choice(Enum):
    """The three answers offered to the learner."""

    KNOW = "know"
    HINT = "hint"
    UNKNOWN = "unknown"


QUALITY_MAPPING = {
    Choice.KNOW.value: 5,
    Choice.HINT.value: 3,
    Choice.UNKNOWN.value: 1,
}


def quality_for_choice(choice: str) -> int:
    """Look up the SM-2 quality for an answer choice.

    Raises:
        InvalidChoiceError: If the choice is not know/hint/unknown.
    """
    try:
        return QUALITY_MAPPING[choice]
    except KeyError:
        raise InvalidChoiceError(
            f"Unknown choice {choice!r}; expected one of {sorted(QUALITY_MAPPING)}"
        ) from None


def is_successful_choice(choice: str) -> bool:
    """Return True if the choice counts as a successful recall."""
    return quality_for_choice(choice) >= PASSING_QUALITY


def next_easiness_factor(easiness_factor: float, quality: int) -> float:
    """Apply the SM-2 easiness update, floored at 1.3."""
    miss = 5 - quality
    return max(MIN_EF, easiness_factor + (0.1 - miss * (0.08 + miss * 0.02)))


class SM2Scheduler:
    """Stateless SM-2 scheduler."""

    algorithm = Algorithm.SM2

    def new_card(self, item_id: ItemId, now: datetime | None = None) -> MemoryCard:
        """Create a never-reviewed card that is due immediately."""
        now = now or utcnow()
        return MemoryCard(
            item_id=item_id,
            algorithm=Algorithm.SM2,
            repetitions=0,
            easiness_factor=INITIAL_EF,
            interval=0,
            status=CardStatus.NEW,
            due=now,
            created_at=now,
            updated_at=now,
        )

    def process_review(
        self,
        card: MemoryCard,
        choice: str,
        now: datetime | None = None,
    ) -> MemoryCard:
        """Apply a know/hint/unknown answer and return the updated card."""
        return self.process_quality(card, quality_for_choice(choice), now)

    def process_outcome(
        self,
        card: MemoryCard,
        signal: str,
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> MemoryCard:
        # SM-2 has no randomness; rng is accepted to match FSRS
        return self.process_review(card, signal, now)

    def process_quality(
        self,
        card: MemoryCard,
        quality: int,
        now: datetime | None = None,
    ) -> MemoryCard:
        """Apply a raw 0-5 quality score and return the updated card.

        The input card is not modified.
        """
        now = now or utcnow()

        if quality >= PASSING_QUALITY:
            repetitions = card.repetitions + 1
            easiness_factor = next_easiness_factor(card.easiness_factor, quality)
            if repetitions == 1:
                interval = FIRST_INTERVAL
            elif repetitions == 2:
                interval = SECOND_INTERVAL
            else:
                interval = round_half_up(card.interval * easiness_factor)
            lapses = card.lapses
        else:
            repetitions = 0
            easiness_factor = card.easiness_factor
            interval = FIRST_INTERVAL
            lapses = card.lapses + 1

        logger.debug(
            "SM-2 review of %s: q=%d reps %d->%d interval %d->%d",
            card.item_id,
            quality,
            card.repetitions,
            repetitions,
            card.interval,
            interval,
        )

        return replace(
            card,
            algorithm=Algorithm.SM2,
            repetitions=repetitions,
            easiness_factor=easiness_factor,
            interval=interval,
            lapses=lapses,
            status=sm2_status(repetitions),
            due=now + timedelta(days=interval),
            last_review=now,
            updated_at=now,
        )
