"""Study orchestration over the database.

Loads the full card or plan record, runs it through the pure scheduling
code, and writes the full result back. Each card update is its own
transaction; plan updates are guarded by the plan's version counter.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from backend.config import utcnow
from backend.models.daily_plan import DailyPlanRecord
from backend.models.learner import Learner
from backend.models.review_log import ReviewLog
from backend.models.study_record import StudyRecord
from backend.models.word import Word
from backend.srs.errors import (
    AlgorithmMismatchError,
    InvalidChoiceError,
    ItemNotFoundError,
    LearnerNotFoundError,
    PastPlanError,
    PlanConflictError,
    PlanNotFoundError,
    UnknownPlanItemError,
)
from backend.srs.fsrs import FSRSParams, FSRSScheduler, StudyAdvice, parse_rating
from backend.srs.memory import Algorithm, CardStatus, MemoryCard, mastery_level
from backend.srs.plan import DailyPlan, DailyPlanGenerator, PlanSettings, PlanStats
from backend.srs.progress import PlanDaySummary, plan_history, record_answer
from backend.srs.scheduler import Scheduler, get_scheduler, parse_algorithm
from backend.srs.sm2 import quality_for_choice
from backend.srs.stats import CollectionStats, ReviewStats, collection_stats, review_stats

logger = logging.getLogger(__name__)

REVIEW_STATS_DAYS = 30
DUE_CARDS_LIMIT = 20


@dataclass
class ReviewOutcome:
    """The result of one submitted review."""

    previous: MemoryCard
    card: MemoryCard
    mastery_level: int


# --- Record <-> core adapters ---


def card_from_record(record: StudyRecord) -> MemoryCard:
    """Extract the scheduling state from a database StudyRecord."""
    return MemoryCard(
        item_id=record.word_id,
        algorithm=Algorithm(record.algorithm),
        repetitions=record.repetitions,
        easiness_factor=record.easiness_factor,
        difficulty=record.difficulty,
        stability=record.stability,
        retrievability=record.retrievability,
        interval=record.interval,
        elapsed_days=record.elapsed_days,
        lapses=record.lapses,
        status=CardStatus(record.status),
        due=record.due,
        last_review=record.last_review,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def apply_card(record: StudyRecord, card: MemoryCard) -> None:
    """Copy every scheduling field of ``card`` onto ``record``."""
    record.algorithm = card.algorithm.value
    record.status = card.status.value
    record.repetitions = card.repetitions
    record.lapses = card.lapses
    record.interval = card.interval
    record.easiness_factor = card.easiness_factor
    record.difficulty = card.difficulty
    record.stability = card.stability
    record.retrievability = card.retrievability
    record.elapsed_days = card.elapsed_days
    record.due = card.due
    record.last_review = card.last_review
    record.updated_at = card.updated_at


def plan_from_record(record: DailyPlanRecord) -> DailyPlan:
    return DailyPlan(
        learner_id=record.learner_id,
        wordbook_id=record.wordbook_id,
        plan_date=record.plan_date,
        planned_items=list(record.planned_items),
        total_count=record.total_count,
        new_items_count=record.new_items_count,
        review_items_count=record.review_items_count,
        completed_items=list(record.completed_items),
        completed_count=record.completed_count,
        current_index=record.current_index,
        stats=PlanStats(**(record.stats or {})),
        is_completed=record.is_completed,
        completed_at=record.completed_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def apply_plan(record: DailyPlanRecord, plan: DailyPlan) -> None:
    """Copy the mutable progress fields of ``plan`` onto ``record``."""
    record.completed_items = list(plan.completed_items)
    record.completed_count = plan.completed_count
    record.current_index = plan.current_index
    record.stats = asdict(plan.stats)
    record.is_completed = plan.is_completed
    record.completed_at = plan.completed_at
    record.updated_at = plan.updated_at


def _new_plan_record(plan: DailyPlan) -> DailyPlanRecord:
    return DailyPlanRecord(
        learner_id=plan.learner_id,
        wordbook_id=plan.wordbook_id,
        plan_date=plan.plan_date,
        planned_items=list(plan.planned_items),
        total_count=plan.total_count,
        new_items_count=plan.new_items_count,
        review_items_count=plan.review_items_count,
        completed_items=[],
        completed_count=0,
        current_index=0,
        stats=asdict(plan.stats),
        is_completed=False,
        created_at=plan.created_at,
        updated_at=plan.updated_at,
    )


# --- Cards ---


async def load_study_record(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    word_id: int,
) -> StudyRecord | None:
    stmt = select(StudyRecord).where(
        and_(
            StudyRecord.learner_id == learner_id,
            StudyRecord.wordbook_id == wordbook_id,
            StudyRecord.word_id == word_id,
        )
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def load_cards(db: AsyncSession, learner_id: int, wordbook_id: str) -> list[MemoryCard]:
    """Load every card the learner has in a wordbook."""
    stmt = select(StudyRecord).where(
        and_(StudyRecord.learner_id == learner_id, StudyRecord.wordbook_id == wordbook_id)
    )
    result = await db.execute(stmt)
    return [card_from_record(record) for record in result.scalars().all()]


async def load_due_cards(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    limit: int = DUE_CARDS_LIMIT,
    now: datetime | None = None,
    algorithm: str | Algorithm | None = None,
) -> list[MemoryCard]:
    """Load the learner's due cards, most overdue first.

    Only cards with a stored record are considered; words never answered are
    new, not due. ``algorithm`` narrows the result to one scheduler's cards.
    """
    now = now or utcnow()
    conditions = [
        StudyRecord.learner_id == learner_id,
        StudyRecord.wordbook_id == wordbook_id,
        StudyRecord.due <= now,
    ]
    if algorithm is not None:
        conditions.append(StudyRecord.algorithm == parse_algorithm(algorithm).value)

    stmt = select(StudyRecord).where(and_(*conditions)).order_by(StudyRecord.due.asc()).limit(limit)
    result = await db.execute(stmt)
    return [card_from_record(record) for record in result.scalars().all()]


async def _require_word(db: AsyncSession, wordbook_id: str, word_id: int) -> Word:
    word = await db.get(Word, word_id)
    if word is None or word.wordbook_id != wordbook_id:
        raise ItemNotFoundError(f"Word {word_id} not found in wordbook {wordbook_id!r}")
    return word


def _log_rating(algorithm: Algorithm, signal: object) -> int:
    if algorithm is Algorithm.FSRS:
        return int(parse_rating(signal))  # type: ignore[arg-type]
    return quality_for_choice(signal)  # type: ignore[arg-type]


async def submit_review(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    word_id: int,
    signal: object,
    algorithm: str | Algorithm | None = None,
    time_ms: int = 0,
    now: datetime | None = None,
    scheduler: Scheduler | None = None,
    rng: random.Random | None = None,
) -> ReviewOutcome:
    """Apply one answer to a learner's card and persist the result.

    Args:
        db: Database session.
        learner_id: The learner answering.
        wordbook_id: The wordbook the word belongs to.
        word_id: The word being answered.
        signal: An SM-2 choice (know/hint/unknown) or FSRS rating (again..easy / 1-4).
        algorithm: Which scheduler to use; must match an existing card's tag.
        time_ms: How long the answer took.
        now: Review time (defaults to utcnow).
        scheduler: Scheduler override, mainly for tests.
        rng: Random source for FSRS interval fuzz.

    Returns:
        ReviewOutcome with the card before and after.
    """
    now = now or utcnow()
    record = await load_study_record(db, learner_id, wordbook_id, word_id)

    if record is None:
        await _require_word(db, wordbook_id, word_id)
        algo = parse_algorithm(algorithm or (scheduler.algorithm if scheduler else None))
        scheduler = scheduler or get_scheduler(algo, rng=rng)
        previous = scheduler.new_card(word_id, now)
    else:
        previous = card_from_record(record)
        algo = parse_algorithm(algorithm) if algorithm else previous.algorithm
        if algo is not previous.algorithm:
            raise AlgorithmMismatchError(
                f"Card for word {word_id} is scheduled with {previous.algorithm.value}, not {algo.value}"
            )
        scheduler = scheduler or get_scheduler(algo, rng=rng)

    rating = _log_rating(algo, signal)
    card = scheduler.process_outcome(previous, signal, now, rng)
    if record is None:
        record = StudyRecord(
            learner_id=learner_id, wordbook_id=wordbook_id, word_id=word_id, created_at=now
        )
        db.add(record)
    apply_card(record, card)
    await db.flush()

    db.add(
        ReviewLog(
            study_record_id=record.id,
            learner_id=learner_id,
            algorithm=algo.value,
            rating=rating,
            time_ms=time_ms,
            interval_before=previous.interval,
            interval_after=card.interval,
            stability_before=previous.stability if algo is Algorithm.FSRS else None,
            stability_after=card.stability if algo is Algorithm.FSRS else None,
            difficulty_before=previous.difficulty if algo is Algorithm.FSRS else None,
            difficulty_after=card.difficulty if algo is Algorithm.FSRS else None,
            reviewed_at=now,
        )
    )
    await db.commit()

    return ReviewOutcome(previous=previous, card=card, mastery_level=mastery_level(card))


async def batch_submit_reviews(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    answers: list[tuple[int, str]],
    algorithm: str | Algorithm | None = None,
    now: datetime | None = None,
) -> list[ReviewOutcome]:
    """Apply many (word_id, choice) answers, each committed on its own.

    Answers with an unknown choice or word are skipped, so one bad entry
    does not lose the rest of the batch.
    """
    outcomes = []
    for word_id, signal in answers:
        try:
            outcomes.append(
                await submit_review(db, learner_id, wordbook_id, word_id, signal, algorithm, now=now)
            )
        except (InvalidChoiceError, ItemNotFoundError, AlgorithmMismatchError) as exc:
            await db.rollback()
            logger.warning("Skipping batch answer for word %s: %s", word_id, exc)

    logger.info(
        "Batch review for learner %d / %s: %d of %d answers applied",
        learner_id,
        wordbook_id,
        len(outcomes),
        len(answers),
    )
    return outcomes


async def preview_fsrs(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    word_id: int,
    now: datetime | None = None,
    params: FSRSParams | None = None,
) -> StudyAdvice:
    """Show what each FSRS rating would do to a card, without saving anything."""
    now = now or utcnow()
    scheduler = FSRSScheduler(params or FSRSParams.from_settings())
    record = await load_study_record(db, learner_id, wordbook_id, word_id)
    if record is None:
        await _require_word(db, wordbook_id, word_id)
        card = scheduler.init_card(word_id, now)
    else:
        card = card_from_record(record)
        if card.algorithm is not Algorithm.FSRS:
            raise AlgorithmMismatchError(f"Card for word {word_id} is not scheduled with FSRS")
    return scheduler.get_study_advice(card, now)


# --- Daily plans ---


def _budget_of(learner: Learner | None) -> PlanSettings:
    if learner is None or (learner.daily_new_words is None and learner.daily_review_words is None):
        return PlanSettings()
    return PlanSettings.validated(learner.daily_new_words, learner.daily_review_words)


async def _require_learner(db: AsyncSession, learner_id: int) -> Learner:
    learner = await db.get(Learner, learner_id)
    if learner is None:
        raise LearnerNotFoundError(f"Learner {learner_id} not found")
    return learner


async def learner_plan_settings(db: AsyncSession, learner_id: int) -> PlanSettings:
    """The learner's saved daily budgets, or the configured defaults."""
    return _budget_of(await db.get(Learner, learner_id))


async def learner_budget(db: AsyncSession, learner_id: int) -> PlanSettings:
    """Like ``learner_plan_settings`` but for a learner that must exist.

    Raises:
        LearnerNotFoundError: If there is no such learner.
    """
    return _budget_of(await _require_learner(db, learner_id))


async def save_learner_budget(
    db: AsyncSession,
    learner_id: int,
    plan_settings: PlanSettings,
) -> PlanSettings:
    """Store a learner's daily budgets; they apply from the next new plan.

    The settings are clamped to the allowed ranges before saving.

    Raises:
        LearnerNotFoundError: If there is no such learner.
    """
    learner = await _require_learner(db, learner_id)
    budget = PlanSettings.validated(plan_settings.daily_new_words, plan_settings.daily_review_words)
    learner.daily_new_words = budget.daily_new_words
    learner.daily_review_words = budget.daily_review_words
    await db.commit()
    logger.info(
        "Learner %d budget set to %d new + %d review",
        learner_id,
        budget.daily_new_words,
        budget.daily_review_words,
    )
    return budget


async def load_plan_record(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    plan_date: date,
) -> DailyPlanRecord | None:
    stmt = select(DailyPlanRecord).where(
        and_(
            DailyPlanRecord.learner_id == learner_id,
            DailyPlanRecord.wordbook_id == wordbook_id,
            DailyPlanRecord.plan_date == plan_date,
        )
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_daily_plan(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    plan_date: date,
) -> DailyPlan:
    """Return an existing plan.

    Raises:
        PlanNotFoundError: If no plan exists for that day.
    """
    record = await load_plan_record(db, learner_id, wordbook_id, plan_date)
    if record is None:
        raise PlanNotFoundError(f"No plan for learner {learner_id} / {wordbook_id} on {plan_date}")
    return plan_from_record(record)


async def get_or_create_daily_plan(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    plan_date: date | None = None,
    plan_settings: PlanSettings | None = None,
    now: datetime | None = None,
    generator: DailyPlanGenerator | None = None,
) -> DailyPlan:
    """Return the day's plan, generating and storing it on first request.

    A plan that already exists is returned unchanged, never regenerated.
    Without explicit ``plan_settings`` the learner's saved budgets are used.
    """
    now = now or utcnow()
    plan_date = plan_date or now.date()

    existing = await load_plan_record(db, learner_id, wordbook_id, plan_date)
    if existing is not None:
        return plan_from_record(existing)

    words_stmt = select(Word.id).where(Word.wordbook_id == wordbook_id).order_by(Word.id.asc())
    word_ids = list((await db.execute(words_stmt)).scalars().all())
    cards = {card.item_id: card for card in await load_cards(db, learner_id, wordbook_id)}
    roster = {word_id: cards.get(word_id) for word_id in word_ids}

    generator = generator or DailyPlanGenerator()
    plan = generator.generate_plan(
        learner_id,
        wordbook_id,
        roster,
        plan_settings or await learner_plan_settings(db, learner_id),
        plan_date,
        now,
    )

    db.add(_new_plan_record(plan))
    try:
        await db.commit()
    except IntegrityError:
        # Another request created the plan first; theirs wins.
        await db.rollback()
        logger.warning(
            "Plan for learner %d / %s on %s was created concurrently", learner_id, wordbook_id, plan_date
        )
        return await get_daily_plan(db, learner_id, wordbook_id, plan_date)
    return plan


async def record_plan_answer(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    word_id: int,
    known: bool,
    time_spent: int = 0,
    plan_date: date | None = None,
    now: datetime | None = None,
) -> DailyPlan:
    """Record an answered word against the learner's plan for the day.

    Raises:
        PastPlanError: If ``plan_date`` is before today.
        PlanNotFoundError: If there is no plan for that day.
        UnknownPlanItemError: If the word is not in the plan.
        PlanConflictError: If the plan was updated concurrently.
    """
    now = now or utcnow()
    plan_date = plan_date or now.date()
    if plan_date < now.date():
        raise PastPlanError(f"Plan for {plan_date} is closed")

    record = await load_plan_record(db, learner_id, wordbook_id, plan_date)
    if record is None:
        raise PlanNotFoundError(f"No plan for learner {learner_id} / {wordbook_id} on {plan_date}")

    plan = plan_from_record(record)
    if word_id not in plan.planned_items:
        raise UnknownPlanItemError(f"Word {word_id} is not in the plan for {plan_date}")

    plan_id = record.id
    updated = record_answer(plan, word_id, known, time_spent, now)
    apply_plan(record, updated)
    try:
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.warning("Concurrent update to plan %d; answer for word %d rejected", plan_id, word_id)
        raise PlanConflictError(f"Plan {plan_id} was updated concurrently; retry") from exc
    return updated


async def load_plan_history(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    days: int = 7,
    today: date | None = None,
) -> list[PlanDaySummary]:
    """Summaries of the learner's plans over the last ``days`` days."""
    today = today or utcnow().date()
    stmt = select(DailyPlanRecord).where(
        and_(
            DailyPlanRecord.learner_id == learner_id,
            DailyPlanRecord.wordbook_id == wordbook_id,
            DailyPlanRecord.plan_date >= today - timedelta(days=days),
        )
    )
    result = await db.execute(stmt)
    return plan_history([plan_from_record(record) for record in result.scalars().all()])


async def load_learner_stats(
    db: AsyncSession,
    learner_id: int,
    wordbook_id: str,
    now: datetime | None = None,
) -> tuple[CollectionStats, ReviewStats]:
    """Card statistics for a wordbook plus FSRS review statistics for the last 30 days."""
    now = now or utcnow()
    cards = await load_cards(db, learner_id, wordbook_id)

    logs_stmt = (
        select(ReviewLog.rating, ReviewLog.time_ms)
        .join(StudyRecord, StudyRecord.id == ReviewLog.study_record_id)
        .where(
            and_(
                ReviewLog.learner_id == learner_id,
                ReviewLog.algorithm == Algorithm.FSRS.value,
                StudyRecord.wordbook_id == wordbook_id,
                ReviewLog.reviewed_at >= now - timedelta(days=REVIEW_STATS_DAYS),
            )
        )
    )
    logs = (await db.execute(logs_stmt)).all()
    return collection_stats(cards, now), review_stats((rating, time_ms) for rating, time_ms in logs)
