"""Tracks a learner's progress through a daily plan."""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime

from backend.config import utcnow
from backend.srs.memory import ItemId
from backend.srs.plan import DailyPlan

logger = logging.getLogger(__name__)


@dataclass
class PlanProgress:
    next_item: ItemId | None
    progress: float  # Percent of planned items completed
    is_completed: bool


@dataclass
class PlanDaySummary:
    """One row of plan history."""

    plan_date: date
    total_planned: int
    total_completed: int
    accuracy: float
    study_time: int
    is_target_reached: bool


def record_answer(
    plan: DailyPlan,
    item_id: ItemId,
    known: bool,
    time_spent: int = 0,
    now: datetime | None = None,
) -> DailyPlan:
    """Record one answered item and return the updated plan.

    Answering an item that is already completed still counts towards the
    known/unknown tally and study time, but not towards ``completed_count``.
    Once a plan is completed it stays completed.

    Args:
        plan: The current plan (not modified).
        item_id: The item that was answered.
        known: Whether the learner recalled the item.
        time_spent: Time taken to answer, in milliseconds.
        now: When the answer was given (defaults to utcnow).

    Returns:
        The plan after the answer.
    """
    now = now or utcnow()

    completed_items = list(plan.completed_items)
    if item_id not in completed_items:
        completed_items.append(item_id)
    completed_count = len(completed_items)

    current_index = plan.current_index
    if current_index < len(plan.planned_items) - 1:
        current_index += 1

    stats = replace(plan.stats)
    if known:
        stats.known_count += 1
    else:
        stats.unknown_count += 1
    stats.study_time += time_spent
    answered = stats.known_count + stats.unknown_count
    if answered > 0:
        stats.accuracy = stats.known_count / answered * 100

    is_completed = plan.is_completed
    completed_at = plan.completed_at
    if not is_completed and completed_count >= plan.total_count:
        is_completed = True
        completed_at = now
        logger.info(
            "Learner %d completed plan %s for %s (%d items, %.0f%% accuracy)",
            plan.learner_id,
            plan.wordbook_id,
            plan.plan_date,
            completed_count,
            stats.accuracy,
        )

    return replace(
        plan,
        completed_items=completed_items,
        completed_count=completed_count,
        current_index=current_index,
        stats=stats,
        is_completed=is_completed,
        completed_at=completed_at,
        updated_at=now,
    )


def current_progress(plan: DailyPlan | None) -> PlanProgress:
    """Return the next item to present and how far through the plan the learner is."""
    if plan is None:
        return PlanProgress(next_item=None, progress=0.0, is_completed=False)

    next_item = None
    if plan.current_index < len(plan.planned_items):
        next_item = plan.planned_items[plan.current_index]
    progress = plan.completed_count / plan.total_count * 100 if plan.total_count > 0 else 0.0
    return PlanProgress(next_item=next_item, progress=progress, is_completed=plan.is_completed)


def plan_history(plans: list[DailyPlan]) -> list[PlanDaySummary]:
    """Summarize a set of plans, most recent day first."""
    return [
        PlanDaySummary(
            plan_date=plan.plan_date,
            total_planned=plan.total_count,
            total_completed=plan.completed_count,
            accuracy=plan.stats.accuracy,
            study_time=plan.stats.study_time,
            is_target_reached=plan.is_completed,
        )
        for plan in sorted(plans, key=lambda p: p.plan_date, reverse=True)
    ]
