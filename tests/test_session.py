"""Tests for persisted reviews and daily plans."""

import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backend.models import DailyPlanRecord, Learner, ReviewLog, StudyRecord
from backend.srs import session as session_module
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
from backend.srs.fsrs import FSRSParams, FSRSScheduler, Rating
from backend.srs.memory import Algorithm, CardStatus
from backend.srs.plan import DailyPlanGenerator, PlanSettings
from backend.srs.session import (
    batch_submit_reviews,
    get_daily_plan,
    get_or_create_daily_plan,
    learner_budget,
    learner_plan_settings,
    load_due_cards,
    load_learner_stats,
    load_plan_history,
    load_plan_record,
    preview_fsrs,
    record_plan_answer,
    save_learner_budget,
    submit_review,
)

WORDBOOK = "toefl"
NOW = datetime(2026, 3, 10, 9, 0, 0)
TODAY = NOW.date()


# --- Reviews ---


@pytest.mark.asyncio
async def test_first_review_creates_record(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    outcome = await submit_review(db, learner_id, WORDBOOK, word_ids[0], "know", "sm2", time_ms=1200, now=NOW)

    assert outcome.previous.status == CardStatus.NEW
    assert outcome.card.repetitions == 1
    assert outcome.card.interval == 1

    record = (await db.execute(select(StudyRecord))).scalar_one()
    assert record.word_id == word_ids[0]
    assert record.algorithm == "sm2"
    assert record.status == "learning"
    assert record.due == NOW + timedelta(days=1)

    log = (await db.execute(select(ReviewLog))).scalar_one()
    assert log.rating == 5
    assert log.time_ms == 1200
    assert log.interval_before == 0
    assert log.interval_after == 1
    assert log.stability_before is None


@pytest.mark.asyncio
async def test_reviews_accumulate(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    now = NOW
    for _ in range(3):
        outcome = await submit_review(db, learner_id, WORDBOOK, word_ids[0], "know", "sm2", now=now)
        now = outcome.card.due

    assert outcome.card.interval == 17
    assert outcome.card.status == CardStatus.REVIEW
    count = (await db.execute(select(func.count(ReviewLog.id)))).scalar()
    assert count == 3


@pytest.mark.asyncio
async def test_fsrs_review_logs_memory_state(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    scheduler = FSRSScheduler(FSRSParams(enable_fuzz=False))
    outcome = await submit_review(
        db, learner_id, WORDBOOK, word_ids[1], 1, now=NOW, scheduler=scheduler
    )
    assert outcome.card.algorithm == Algorithm.FSRS
    assert outcome.card.status == CardStatus.LEARNING
    assert outcome.card.lapses == 1

    log = (await db.execute(select(ReviewLog))).scalar_one()
    assert log.algorithm == "fsrs"
    assert log.rating == 1
    assert log.stability_before == pytest.approx(outcome.previous.stability)
    assert log.difficulty_after == pytest.approx(outcome.card.difficulty)


@pytest.mark.asyncio
async def test_invalid_choice_writes_nothing(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    with pytest.raises(InvalidChoiceError):
        await submit_review(db, learner_id, WORDBOOK, word_ids[0], "sort of", "sm2", now=NOW)
    await db.rollback()
    assert (await db.execute(select(func.count(StudyRecord.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_unknown_word(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    with pytest.raises(ItemNotFoundError):
        await submit_review(db, learner_id, WORDBOOK, 9999, "know", "sm2", now=NOW)
    with pytest.raises(ItemNotFoundError):
        await submit_review(db, learner_id, "ielts", word_ids[0], "know", "sm2", now=NOW)


@pytest.mark.asyncio
async def test_algorithm_mismatch(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    await submit_review(db, learner_id, WORDBOOK, word_ids[0], "know", "sm2", now=NOW)
    with pytest.raises(AlgorithmMismatchError):
        await submit_review(db, learner_id, WORDBOOK, word_ids[0], 3, "fsrs", now=NOW)
    with pytest.raises(AlgorithmMismatchError):
        await preview_fsrs(db, learner_id, WORDBOOK, word_ids[0], now=NOW)


@pytest.mark.asyncio
async def test_batch_skips_bad_answers(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    outcomes = await batch_submit_reviews(
        db,
        learner_id,
        WORDBOOK,
        [(word_ids[0], "know"), (word_ids[1], "bogus"), (9999, "know"), (word_ids[2], "unknown")],
        algorithm="sm2",
        now=NOW,
    )
    assert [outcome.card.item_id for outcome in outcomes] == [word_ids[0], word_ids[2]]
    assert (await db.execute(select(func.count(StudyRecord.id)))).scalar() == 2


@pytest.mark.asyncio
async def test_preview_saves_nothing(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    advice = await preview_fsrs(db, learner_id, WORDBOOK, word_ids[0], now=NOW)
    assert set(advice.suggestions) == {"again", "hard", "good", "easy"}
    assert (await db.execute(select(func.count(StudyRecord.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_learner_stats(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    await submit_review(db, learner_id, WORDBOOK, word_ids[0], "know", "sm2", now=NOW)
    await submit_review(db, learner_id, WORDBOOK, word_ids[1], 3, "fsrs", time_ms=800, now=NOW)
    await submit_review(db, learner_id, WORDBOOK, word_ids[2], 1, "fsrs", time_ms=1200, now=NOW)

    cards, reviews = await load_learner_stats(db, learner_id, WORDBOOK, now=NOW)
    assert cards.total_cards == 3
    assert cards.learning_cards == 3
    assert reviews.total_reviews == 2
    assert reviews.accuracy == 50
    assert reviews.average_time == 1000
    assert reviews.rating_distribution["again"] == 1


@pytest.mark.asyncio
async def test_submit_review_with_seeded_rng(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    params = FSRSParams.from_settings()
    outcome = await submit_review(
        db, learner_id, WORDBOOK, word_ids[0], "easy", "fsrs", now=NOW, rng=random.Random(9)
    )
    fresh = FSRSScheduler(params).init_card(word_ids[0], NOW)
    expected = FSRSScheduler(params).schedule(fresh, Rating.EASY, NOW, random.Random(9))
    assert outcome.card.interval == expected.interval
    assert outcome.card.due == expected.due


@pytest.mark.asyncio
async def test_due_cards_most_overdue_first(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    await submit_review(db, learner_id, WORDBOOK, word_ids[1], "know", "sm2", now=NOW - timedelta(days=5))
    await submit_review(db, learner_id, WORDBOOK, word_ids[0], "know", "sm2", now=NOW - timedelta(days=10))
    await submit_review(db, learner_id, WORDBOOK, word_ids[2], "know", "sm2", now=NOW)
    await submit_review(db, learner_id, WORDBOOK, word_ids[3], "unknown", "sm2", now=NOW - timedelta(days=3))

    due = await load_due_cards(db, learner_id, WORDBOOK, now=NOW)
    assert [card.item_id for card in due] == [word_ids[0], word_ids[1], word_ids[3]]
    assert all(card.due <= NOW for card in due)

    first_two = await load_due_cards(db, learner_id, WORDBOOK, limit=2, now=NOW)
    assert [card.item_id for card in first_two] == [word_ids[0], word_ids[1]]

    assert await load_due_cards(db, learner_id, WORDBOOK, now=NOW, algorithm="fsrs") == []
    assert await load_due_cards(db, learner_id, "ielts", now=NOW) == []


# --- Daily plans ---


@pytest.mark.asyncio
async def test_plan_created_once(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    first = await get_or_create_daily_plan(
        db, learner_id, WORDBOOK, now=NOW, generator=DailyPlanGenerator(random.Random(1))
    )
    assert sorted(first.planned_items) == sorted(word_ids)
    assert first.new_items_count == 5

    # Different settings and seed; the stored plan still wins
    second = await get_or_create_daily_plan(
        db,
        learner_id,
        WORDBOOK,
        now=NOW + timedelta(hours=3),
        plan_settings=PlanSettings(daily_new_words=1, daily_review_words=0, daily_target=1),
        generator=DailyPlanGenerator(random.Random(2)),
    )
    assert second.planned_items == first.planned_items
    assert (await db.execute(select(func.count(DailyPlanRecord.id)))).scalar() == 1


@pytest.mark.asyncio
async def test_duplicate_plan_insert_rejected(session_factory, wordbook) -> None:
    learner_id, _ = wordbook
    async with session_factory() as db:
        await get_or_create_daily_plan(db, learner_id, WORDBOOK, now=NOW)
        db.add(
            DailyPlanRecord(
                learner_id=learner_id,
                wordbook_id=WORDBOOK,
                plan_date=TODAY,
                planned_items=[],
                completed_items=[],
                stats={},
            )
        )
        with pytest.raises(IntegrityError):
            await db.commit()


@pytest.mark.asyncio
async def test_concurrent_creation_keeps_first_plan(session_factory, wordbook, monkeypatch) -> None:
    learner_id, _ = wordbook
    async with session_factory() as first_db, session_factory() as second_db:
        winner = await get_or_create_daily_plan(first_db, learner_id, WORDBOOK, now=NOW)

        # The second request checked for a plan before the first one was stored
        real_load = session_module.load_plan_record
        calls = []

        async def miss_first_lookup(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return await real_load(*args, **kwargs)

        monkeypatch.setattr(session_module, "load_plan_record", miss_first_lookup)
        loser = await get_or_create_daily_plan(
            second_db, learner_id, WORDBOOK, now=NOW, generator=DailyPlanGenerator(random.Random(99))
        )

    assert len(calls) == 2
    assert loser.planned_items == winner.planned_items
    async with session_factory() as check_db:
        count = (await check_db.execute(select(func.count(DailyPlanRecord.id)))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_plan_prioritizes_due_reviews(db, wordbook) -> None:
    learner_id, word_ids = wordbook
    past = NOW - timedelta(days=10)
    await submit_review(db, learner_id, WORDBOOK, word_ids[3], "know", "sm2", now=past)

    plan = await get_or_create_daily_plan(db, learner_id, WORDBOOK, now=NOW)
    assert plan.planned_items[0] == word_ids[3]
    assert plan.review_items_count == 1
    assert plan.new_items_count == 4


@pytest.mark.asyncio
async def test_answer_flow(db, wordbook) -> None:
    learner_id, _ = wordbook
    plan = await get_or_create_daily_plan(db, learner_id, WORDBOOK, now=NOW)
    for i, word_id in enumerate(plan.planned_items):
        plan = await record_plan_answer(
            db, learner_id, WORDBOOK, word_id, known=i % 2 == 0, time_spent=500, now=NOW
        )

    assert plan.is_completed
    assert plan.completed_at == NOW
    assert plan.stats.study_time == 2500
    assert plan.stats.accuracy == pytest.approx(60.0)

    stored = await get_daily_plan(db, learner_id, WORDBOOK, TODAY)
    assert stored.completed_count == 5
    assert stored.is_completed
    record = await load_plan_record(db, learner_id, WORDBOOK, TODAY)
    assert record.version == 6


@pytest.mark.asyncio
async def test_answer_errors(db, wordbook) -> None:
    learner_id, _ = wordbook
    with pytest.raises(PlanNotFoundError):
        await record_plan_answer(db, learner_id, WORDBOOK, 1, True, now=NOW)

    await get_or_create_daily_plan(db, learner_id, WORDBOOK, now=NOW)
    with pytest.raises(UnknownPlanItemError):
        await record_plan_answer(db, learner_id, WORDBOOK, 9999, True, now=NOW)
    with pytest.raises(PastPlanError):
        await record_plan_answer(db, learner_id, WORDBOOK, 1, True, plan_date=TODAY, now=NOW + timedelta(days=1))


@pytest.mark.asyncio
async def test_stale_plan_update_rejected(session_factory, wordbook) -> None:
    learner_id, _ = wordbook
    async with session_factory() as first_db, session_factory() as second_db:
        plan = await get_or_create_daily_plan(first_db, learner_id, WORDBOOK, now=NOW)
        word_a, word_b = plan.planned_items[:2]

        # Both sessions have loaded version 1
        await load_plan_record(first_db, learner_id, WORDBOOK, TODAY)
        await load_plan_record(second_db, learner_id, WORDBOOK, TODAY)

        await record_plan_answer(second_db, learner_id, WORDBOOK, word_a, True, now=NOW)
        with pytest.raises(PlanConflictError):
            await record_plan_answer(first_db, learner_id, WORDBOOK, word_b, True, now=NOW)

    async with session_factory() as check_db:
        stored = await get_daily_plan(check_db, learner_id, WORDBOOK, TODAY)
    assert stored.completed_items == [word_a]


@pytest.mark.asyncio
async def test_plan_history(db, wordbook) -> None:
    learner_id, _ = wordbook
    for days_ago in (0, 2, 20):
        await get_or_create_daily_plan(db, learner_id, WORDBOOK, now=NOW - timedelta(days=days_ago))

    history = await load_plan_history(db, learner_id, WORDBOOK, days=7, today=TODAY)
    assert [day.plan_date for day in history] == [TODAY, TODAY - timedelta(days=2)]
    assert all(day.total_planned == 5 for day in history)


@pytest.mark.asyncio
async def test_plan_uses_learner_budget(db, wordbook) -> None:
    learner_id, _ = wordbook
    learner = await db.get(Learner, learner_id)
    learner.daily_new_words = 2
    learner.daily_review_words = 0
    await db.commit()

    assert await learner_plan_settings(db, learner_id) == PlanSettings(
        daily_new_words=2, daily_review_words=0, daily_target=2
    )
    plan = await get_or_create_daily_plan(db, learner_id, WORDBOOK, now=NOW)
    assert plan.total_count == 2


@pytest.mark.asyncio
async def test_learner_budget_defaults_and_save(db, wordbook) -> None:
    learner_id, _ = wordbook
    assert await learner_budget(db, learner_id) == PlanSettings()

    saved = await save_learner_budget(db, learner_id, PlanSettings(daily_new_words=80, daily_review_words=30))
    assert (saved.daily_new_words, saved.daily_review_words, saved.daily_target) == (50, 30, 80)

    learner = await db.get(Learner, learner_id)
    assert (learner.daily_new_words, learner.daily_review_words) == (50, 30)
    assert await learner_budget(db, learner_id) == saved

    await save_learner_budget(db, learner_id, PlanSettings.preset("relaxed"))
    assert (await learner_budget(db, learner_id)).daily_target == 32


@pytest.mark.asyncio
async def test_learner_budget_unknown_learner(db, wordbook) -> None:
    with pytest.raises(LearnerNotFoundError):
        await learner_budget(db, 9999)
    with pytest.raises(LearnerNotFoundError):
        await save_learner_budget(db, 9999, PlanSettings.preset("standard"))
