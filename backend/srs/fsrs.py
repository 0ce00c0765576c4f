"""FSRS (Free Spaced Repetition Scheduler) algorithm implementation.

Adapted from fsrs4anki for a vocabulary learning service.
Reference: https://github.com/open-spaced-repetition/fsrs4anki

Key concepts:
- Stability (S): The number of days after which retention drops to 90%.
- Difficulty (D): A value between 1 and 10 representing inherent item difficulty.
- Retrievability (R): The probability of recall at a given time since the card was due.
- Rating: 1=Again, 2=Hard, 3=Good, 4=Easy
"""

import logging
import math
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import IntEnum

from backend.config import settings, utcnow
from backend.srs.errors import InvalidChoiceError
from backend.srs.memory import Algorithm, CardStatus, ItemId, MemoryCard, round_half_up

logger = logging.getLogger(__name__)

# Default weights from fsrs4anki (FSRS-5, 21 parameters)
# w[0..3]: initial stability for ratings Again/Hard/Good/Easy
# w[4..5]: initial difficulty
# w[6]: difficulty update step
# w[7]: difficulty mean reversion weight
# w[8..10]: recall stability
# w[11..14]: forget stability
# w[15..16]: hard penalty / easy bonus
# w[17..19]: short-term stability
# w[20]: forgetting curve decay
DEFAULT_WEIGHTS = [
    0.212,
    1.2931,
    2.3065,
    8.2956,
    6.4133,
    0.8334,
    3.0194,
    0.001,
    1.8722,
    0.1666,
    0.796,
    1.4835,
    0.0614,
    0.2629,
    1.6483,
    0.6014,
    1.8729,
    0.5425,
    0.0912,
    0.0658,
    0.1542,
]

MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.1  # Days

FUZZ_THRESHOLD = 2.5  # Intervals shorter than this are never fuzzed


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


def parse_rating(value: "str | int | Rating") -> Rating:
    """Accept a rating as a name ("good") or number (3).

    Raises:
        InvalidChoiceError: If the value is not one of the four ratings.
    """
    if isinstance(value, str):
        try:
            return Rating[value.upper()]
        except KeyError:
            raise InvalidChoiceError(f"Unknown rating {value!r}") from None
    try:
        return Rating(value)
    except ValueError:
        raise InvalidChoiceError(f"Rating must be 1-4, got {value!r}") from None


@dataclass
class FSRSParams:
    w: list[float] = field(default_factory=lambda: list(DEFAULT_WEIGHTS))
    request_retention: float = 0.9
    maximum_interval: int = 36500
    enable_fuzz: bool = True

    @classmethod
    def from_settings(cls) -> "FSRSParams":
        return cls(
            request_retention=settings.target_retention,
            maximum_interval=settings.maximum_interval,
            enable_fuzz=settings.enable_fuzz,
        )


@dataclass
class IntervalSuggestion:
    """What a single rating would do to the card."""

    interval: int
    due: datetime
    stability: float


@dataclass
class StudyAdvice:
    """A read-only preview of all four ratings for a card."""

    difficulty: str  # easy, medium, hard, very hard
    retrievability: int | None  # Percent, None if never estimated
    suggestions: dict[str, IntervalSuggestion]


class FSRSScheduler:
    """Free Spaced Repetition Scheduler.

    Holds only its parameters and an optional random source for interval
    fuzz; every call takes the card, the rating and the time, and returns a
    new card.
    """

    algorithm = Algorithm.FSRS

    def __init__(
        self,
        params: FSRSParams | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize with optional custom parameters and fuzz random source."""
        self.params = params or FSRSParams()
        self.rng = rng
        self.w = self.params.w
        if len(self.w) != len(DEFAULT_WEIGHTS):
            raise ValueError(f"FSRS needs {len(DEFAULT_WEIGHTS)} weights, got {len(self.w)}")
        self.request_retention = self.params.request_retention
        self.maximum_interval = self.params.maximum_interval
        self.enable_fuzz = self.params.enable_fuzz

        # Forgetting curve constants: R(t=S) = 0.9
        self.decay = -self.w[20]
        self.factor = 0.9 ** (1 / self.decay) - 1

    def init_card(self, item_id: ItemId = "", now: datetime | None = None) -> MemoryCard:
        """Create a new card seeded from the "good" rating."""
        now = now or utcnow()
        return MemoryCard(
            item_id=item_id,
            algorithm=Algorithm.FSRS,
            difficulty=self._init_difficulty(Rating.GOOD),
            stability=self._init_stability(Rating.GOOD),
            retrievability=0.0,
            status=CardStatus.NEW,
            due=now,
            created_at=now,
            updated_at=now,
        )

    def new_card(self, item_id: ItemId, now: datetime | None = None) -> MemoryCard:
        return self.init_card(item_id, now)

    def process_outcome(
        self,
        card: MemoryCard,
        signal: "str | int | Rating",
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> MemoryCard:
        return self.schedule(card, parse_rating(signal), now, rng)

    def schedule(
        self,
        card: MemoryCard,
        rating: Rating,
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> MemoryCard:
        """Apply a rating and return the updated card.

        Args:
            card: Current card state (not modified).
            rating: Review rating (1=Again, 2=Hard, 3=Good, 4=Easy).
            now: When the review happened (defaults to now).
            rng: Random source for interval fuzz (defaults to the scheduler's,
                then to a fresh one).

        Returns:
            The card after the review.
        """
        rating = Rating(rating)
        now = now or utcnow()
        rng = rng or self.rng or random.Random()

        elapsed_days = max(0.0, (now - card.due).total_seconds() / 86400)
        retrievability = card.retrievability
        if card.status is CardStatus.REVIEW:
            retrievability = self._forgetting_curve(elapsed_days, card.stability)

        if rating == Rating.AGAIN:
            status, difficulty, stability, scheduled_days = self._handle_again(
                card, retrievability, rng
            )
            lapses = card.lapses + 1
        else:
            status, difficulty, stability, scheduled_days = self._handle_pass(
                card, rating, retrievability, rng
            )
            lapses = card.lapses

        logger.debug(
            "FSRS review of %s: rating=%d %s->%s S %.2f->%.2f D %.2f->%.2f in %dd",
            card.item_id,
            rating,
            card.status.value,
            status.value,
            card.stability,
            stability,
            card.difficulty,
            difficulty,
            scheduled_days,
        )

        return replace(
            card,
            algorithm=Algorithm.FSRS,
            repetitions=card.repetitions + 1,
            difficulty=difficulty,
            stability=stability,
            retrievability=retrievability,
            interval=scheduled_days,
            elapsed_days=elapsed_days,
            lapses=lapses,
            status=status,
            due=now + timedelta(days=scheduled_days),
            last_review=now,
            updated_at=now,
        )

    def get_next_states(
        self,
        card: MemoryCard,
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> dict[str, MemoryCard]:
        """Preview the card after each of the four ratings without committing."""
        now = now or utcnow()
        return {
            rating.name.lower(): self.schedule(card, rating, now, rng) for rating in Rating
        }

    def get_study_advice(
        self,
        card: MemoryCard,
        now: datetime | None = None,
        rng: random.Random | None = None,
    ) -> StudyAdvice:
        """Summarize the interval, due date and stability each rating would give."""
        states = self.get_next_states(card, now, rng)
        return StudyAdvice(
            difficulty=difficulty_label(card.difficulty),
            retrievability=round_half_up(card.retrievability * 100) if card.retrievability else None,
            suggestions={
                name: IntervalSuggestion(
                    interval=state.interval,
                    due=state.due,
                    stability=round(state.stability, 2),
                )
                for name, state in states.items()
            },
        )

    def _handle_again(
        self,
        card: MemoryCard,
        retrievability: float,
        rng: random.Random,
    ) -> tuple[CardStatus, float, float, int]:
        """A lapse: back to (re)learning with reduced stability, due tomorrow."""
        if card.status is CardStatus.NEW:
            status = CardStatus.LEARNING
        else:
            status = CardStatus.RELEARNING

        difficulty = self._next_difficulty(card.difficulty, Rating.AGAIN)
        if status is CardStatus.RELEARNING:
            stability = self._next_forget_stability(difficulty, card.stability, retrievability)
        else:
            stability = self._next_short_term_stability(card.stability, Rating.AGAIN)

        scheduled_days = self._apply_fuzz(1, rng) if self.enable_fuzz else 1
        return status, difficulty, stability, scheduled_days

    def _handle_pass(
        self,
        card: MemoryCard,
        rating: Rating,
        retrievability: float,
        rng: random.Random,
    ) -> tuple[CardStatus, float, float, int]:
        """A successful recall (Hard, Good or Easy)."""
        status = card.status
        if status is CardStatus.NEW:
            status = CardStatus.LEARNING
        elif status in (CardStatus.LEARNING, CardStatus.RELEARNING):
            status = CardStatus.REVIEW

        difficulty = self._next_difficulty(card.difficulty, rating)
        if status is CardStatus.LEARNING:
            stability = self._next_short_term_stability(card.stability, rating)
        else:
            stability = self._next_recall_stability(
                difficulty, card.stability, retrievability, rating
            )

        return status, difficulty, stability, self._next_interval(stability, rng)

    def _init_difficulty(self, rating: Rating) -> float:
        """D0(G) = w4 - e^(w5 * (G - 1)) + 1"""
        d = self.w[4] - math.exp(self.w[5] * (rating - 1)) + 1
        return _clamp(d, MIN_DIFFICULTY, MAX_DIFFICULTY)

    def _init_stability(self, rating: Rating) -> float:
        """S0(G) = w[G-1]"""
        return max(MIN_STABILITY, self.w[rating - 1])

    def _next_difficulty(self, difficulty: float, rating: Rating) -> float:
        """Damped step towards harder/easier, then a small pull towards D0(Easy)."""
        delta = -self.w[6] * (rating - 3)
        next_d = difficulty + self._linear_damping(delta, difficulty)
        return _clamp(
            self._mean_reversion(self._init_difficulty(Rating.EASY), next_d),
            MIN_DIFFICULTY,
            MAX_DIFFICULTY,
        )

    def _linear_damping(self, delta: float, difficulty: float) -> float:
        return delta * (10 - difficulty) / 9

    def _mean_reversion(self, init: float, current: float) -> float:
        return self.w[7] * init + (1 - self.w[7]) * current

    def _next_recall_stability(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        """S' = S * (1 + e^w8 * (11 - D) * S^-w9 * (e^((1-R)*w10) - 1) * penalty * bonus)"""
        stability = max(MIN_STABILITY, stability)
        hard_penalty = self.w[15] if rating == Rating.HARD else 1.0
        easy_bonus = self.w[16] if rating == Rating.EASY else 1.0
        growth = (
            math.exp(self.w[8])
            * (11 - difficulty)
            * stability ** (-self.w[9])
            * (math.exp((1 - retrievability) * self.w[10]) - 1)
            * hard_penalty
            * easy_bonus
        )
        return stability * (1 + growth)

    def _next_forget_stability(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
    ) -> float:
        """S' = w11 * D^-w12 * ((S+1)^w13 - 1) * e^((1-R)*w14), capped at S / e^(w17*w18)"""
        stability = max(MIN_STABILITY, stability)
        s_max = stability / math.exp(self.w[17] * self.w[18])
        new_s = (
            self.w[11]
            * difficulty ** (-self.w[12])
            * ((stability + 1) ** self.w[13] - 1)
            * math.exp((1 - retrievability) * self.w[14])
        )
        return max(MIN_STABILITY, min(new_s, s_max))

    def _next_short_term_stability(self, stability: float, rating: Rating) -> float:
        """Same-day stability change; never shrinks on Good or Easy."""
        stability = max(MIN_STABILITY, stability)
        sinc = math.exp(self.w[17] * (rating - 3 + self.w[18])) * stability ** (-self.w[19])
        if rating >= Rating.GOOD:
            sinc = max(sinc, 1.0)
        return max(MIN_STABILITY, stability * sinc)

    def _next_interval(self, stability: float, rng: random.Random) -> int:
        """Invert the forgetting curve for the requested retention.

        I(S) = S / FACTOR * (r^(1/DECAY) - 1), clamped to [1, maximum_interval]
        """
        interval = stability / self.factor * (self.request_retention ** (1 / self.decay) - 1)
        days = max(1, min(self.maximum_interval, round_half_up(interval)))
        if self.enable_fuzz:
            days = self._apply_fuzz(days, rng)
        return days

    def _apply_fuzz(self, interval: int, rng: random.Random) -> int:
        """Spread intervals by about 5% so cards don't bunch up on the same day."""
        if interval < FUZZ_THRESHOLD:
            return interval
        low = max(2, round_half_up(interval * 0.95 - 1))
        high = round_half_up(interval * 1.05 + 1)
        return min(self.maximum_interval, rng.randint(low, high))

    def _forgetting_curve(self, elapsed_days: float, stability: float) -> float:
        """R(t) = (1 + FACTOR * t / S)^DECAY"""
        stability = max(MIN_STABILITY, stability)
        r = (1 + self.factor * elapsed_days / stability) ** self.decay
        return _clamp(r, 0.0, 1.0)


def difficulty_label(difficulty: float) -> str:
    """Bucket a 1-10 difficulty into a human-readable label."""
    if difficulty <= 3:
        return "easy"
    if difficulty <= 5:
        return "medium"
    if difficulty <= 7:
        return "hard"
    return "very hard"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
