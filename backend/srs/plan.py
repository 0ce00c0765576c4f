"""Daily plan generation.

Classifies a learner's wordbook into new, due and overdue items, scores
them, and selects a bounded, ordered queue for the day's session.
"""

import logging
import math
import random
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum

from backend.config import settings, utcnow
from backend.srs.memory import CardStatus, ItemId, MemoryCard

logger = logging.getLogger(__name__)

OVERDUE_BASE = 1000
OVERDUE_DAY_WEIGHT = 10
OVERDUE_FAILURE_WEIGHT = 0.2
REVIEW_BASE = 500
REVIEW_DAY_WEIGHT = 5
REVIEW_FAILURE_WEIGHT = 0.1
NEW_BASE = 100
NEW_JITTER = 50

DAY_SECONDS = 86400


@dataclass
class PlanSettings:
    """How much work a learner wants per day."""

    daily_new_words: int = field(default_factory=lambda: settings.daily_new_words)
    daily_review_words: int = field(default_factory=lambda: settings.daily_review_words)
    daily_target: int = field(default_factory=lambda: settings.daily_target)

    @classmethod
    def preset(cls, name: str) -> "PlanSettings":
        """Return one of the named presets (relaxed, standard, intensive)."""
        try:
            return replace(PRESETS[name])
        except KeyError:
            raise ValueError(f"Unknown preset {name!r}; expected one of {sorted(PRESETS)}") from None

    @classmethod
    def validated(
        cls,
        daily_new_words: int | None = None,
        daily_review_words: int | None = None,
    ) -> "PlanSettings":
        """Build settings from user input, clamping to sane limits.

        New words are kept within 1-50 and reviews within 0-200; the daily
        target is always their sum.
        """
        new_words = settings.daily_new_words
        review_words = settings.daily_review_words
        if daily_new_words is not None:
            new_words = max(1, min(50, daily_new_words))
        if daily_review_words is not None:
            review_words = max(0, min(200, daily_review_words))
        return cls(
            daily_new_words=new_words,
            daily_review_words=review_words,
            daily_target=new_words + review_words,
        )


PRESETS = {
    "relaxed": PlanSettings(daily_new_words=8, daily_review_words=24, daily_target=32),
    "standard": PlanSettings(daily_new_words=16, daily_review_words=48, daily_target=64),
    "intensive": PlanSettings(daily_new_words=24, daily_review_words=72, daily_target=96),
}


class ItemBucket(Enum):
    """Why an item is in the plan. Declared in descending order of urgency."""

    OVERDUE = "overdue"
    REVIEW = "review"
    NEW = "new"


_BUCKET_RANK = {ItemBucket.OVERDUE: 2, ItemBucket.REVIEW: 1, ItemBucket.NEW: 0}


@dataclass
class PrioritizedItem:
    item_id: ItemId
    priority: float
    bucket: ItemBucket


@dataclass
class PlanStats:
    """Running tally for a day's answers."""

    known_count: int = 0
    unknown_count: int = 0
    study_time: int = 0  # Milliseconds
    accuracy: float = 0.0  # Percent


@dataclass
class DailyPlan:
    """The ordered queue of items for one learner, wordbook and day."""

    learner_id: int
    wordbook_id: str
    plan_date: date
    planned_items: list[ItemId] = field(default_factory=list)
    total_count: int = 0
    new_items_count: int = 0
    review_items_count: int = 0
    completed_items: list[ItemId] = field(default_factory=list)
    completed_count: int = 0
    current_index: int = 0
    stats: PlanStats = field(default_factory=PlanStats)
    is_completed: bool = False
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


def _days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from ``earlier`` to ``later``, rounded down."""
    return math.floor((later - earlier).total_seconds() / DAY_SECONDS)


class DailyPlanGenerator:
    """Builds a day's plan from a wordbook roster and its recorded states."""

    def __init__(self, rng: random.Random | None = None) -> None:
        """Initialize with an optional random source for shuffling new items."""
        self.rng = rng or random.Random()

    def classify(
        self,
        roster: Mapping[ItemId, MemoryCard | None],
        now: datetime,
    ) -> dict[ItemBucket, list[tuple[ItemId, MemoryCard | None]]]:
        """Sort every roster entry into at most one bucket.

        Mastered cards and cards that are not yet due are left out.
        """
        buckets: dict[ItemBucket, list[tuple[ItemId, MemoryCard | None]]] = {
            bucket: [] for bucket in ItemBucket
        }
        for item_id, card in roster.items():
            if card is None or card.is_new:
                buckets[ItemBucket.NEW].append((item_id, card))
            elif card.status is CardStatus.MASTERED:
                continue
            elif now >= card.due:
                if _days_between(now, card.due) > 1:
                    buckets[ItemBucket.OVERDUE].append((item_id, card))
                else:
                    buckets[ItemBucket.REVIEW].append((item_id, card))
        return buckets

    def prioritize(
        self,
        buckets: dict[ItemBucket, list[tuple[ItemId, MemoryCard | None]]],
        now: datetime,
    ) -> list[PrioritizedItem]:
        """Score each bucketed item and return them most urgent first.

        Overdue items always come before review items, and review items
        before new ones; within a bucket the score decides.
        """
        items: list[PrioritizedItem] = []

        for item_id, card in buckets[ItemBucket.OVERDUE]:
            overdue_days = _days_between(now, card.due)
            priority = OVERDUE_BASE + overdue_days * OVERDUE_DAY_WEIGHT + card.lapses * OVERDUE_FAILURE_WEIGHT
            items.append(PrioritizedItem(item_id, priority, ItemBucket.OVERDUE))

        for item_id, card in buckets[ItemBucket.REVIEW]:
            since_review = _days_between(now, card.last_review) if card.last_review else 0
            priority = REVIEW_BASE + since_review * REVIEW_DAY_WEIGHT + card.lapses * REVIEW_FAILURE_WEIGHT
            items.append(PrioritizedItem(item_id, priority, ItemBucket.REVIEW))

        for item_id, _card in buckets[ItemBucket.NEW]:
            priority = NEW_BASE + self.rng.random() * NEW_JITTER
            items.append(PrioritizedItem(item_id, priority, ItemBucket.NEW))

        items.sort(key=lambda item: (_BUCKET_RANK[item.bucket], item.priority), reverse=True)
        return items

    def select(self, prioritized: list[PrioritizedItem], plan_settings: PlanSettings) -> list[PrioritizedItem]:
        """Pick the day's items in three passes.

        1. Overdue and review items, up to the review budget.
        2. New items, up to the new-word budget, within the remaining target.
        3. More new items if the target still isn't met.
        """
        target = max(0, plan_settings.daily_target)
        due_items = [item for item in prioritized if item.bucket is not ItemBucket.NEW]
        new_items = [item for item in prioritized if item.bucket is ItemBucket.NEW]

        review_budget = max(0, min(plan_settings.daily_review_words, target))
        selected = due_items[:review_budget]

        remaining = target - len(selected)
        if remaining > 0:
            new_budget = max(0, min(remaining, plan_settings.daily_new_words))
            selected.extend(new_items[:new_budget])

        still_remaining = target - len(selected)
        if still_remaining > 0:
            taken = sum(1 for item in selected if item.bucket is ItemBucket.NEW)
            selected.extend(new_items[taken : taken + still_remaining])

        return selected

    def generate_plan(
        self,
        learner_id: int,
        wordbook_id: str,
        roster: Mapping[ItemId, MemoryCard | None],
        plan_settings: PlanSettings,
        plan_date: date,
        now: datetime | None = None,
    ) -> DailyPlan:
        """Build a fresh plan for the day.

        Args:
            learner_id: The learner the plan is for.
            wordbook_id: The wordbook the roster comes from.
            roster: Every item in the wordbook mapped to its card, or None
                if the learner has never studied it.
            plan_settings: Daily budgets.
            plan_date: The calendar day of the plan.
            now: Time used to judge due/overdue (defaults to utcnow).

        Returns:
            A new DailyPlan with nothing completed yet.
        """
        now = now or utcnow()
        buckets = self.classify(roster, now)
        selected = self.select(self.prioritize(buckets, now), plan_settings)

        plan = DailyPlan(
            learner_id=learner_id,
            wordbook_id=wordbook_id,
            plan_date=plan_date,
            planned_items=[item.item_id for item in selected],
            total_count=len(selected),
            new_items_count=sum(1 for item in selected if item.bucket is ItemBucket.NEW),
            review_items_count=sum(1 for item in selected if item.bucket is not ItemBucket.NEW),
            created_at=now,
            updated_at=now,
        )

        logger.info(
            "Generated plan for learner %d / %s on %s: %d overdue + %d review + %d new available, %d planned (%d new, %d review)",
            learner_id,
            wordbook_id,
            plan_date,
            len(buckets[ItemBucket.OVERDUE]),
            len(buckets[ItemBucket.REVIEW]),
            len(buckets[ItemBucket.NEW]),
            plan.total_count,
            plan.new_items_count,
            plan.review_items_count,
        )
        return plan
