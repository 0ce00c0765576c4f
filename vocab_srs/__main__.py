"""CLI interface for Vocab SRS.

Usage:
    python -m vocab_srs add "word" "definition"    Add a word to a wordbook
    python -m vocab_srs plan                       Show today's plan
    python -m vocab_srs review                     Work through today's plan
    python -m vocab_srs due                        List the words due for review
    python -m vocab_srs stats                      Show your statistics
    python -m vocab_srs budget --new 10            Change your daily budget
"""

import argparse
import asyncio
import logging
import time

from sqlalchemy import and_, func, select

from backend.config import settings, utcnow
from backend.database import async_session, engine
from backend.models import Base
from backend.models.learner import Learner
from backend.models.study_record import StudyRecord
from backend.models.word import Word
from backend.srs.errors import AlgorithmMismatchError, InvalidChoiceError
from backend.srs.fsrs import parse_rating
from backend.srs.memory import Algorithm
from backend.srs.plan import PlanSettings
from backend.srs.progress import current_progress
from backend.srs.scheduler import parse_algorithm
from backend.srs.session import (
    get_or_create_daily_plan,
    learner_budget,
    load_due_cards,
    load_learner_stats,
    record_plan_answer,
    save_learner_budget,
    submit_review,
)
from backend.srs.sm2 import is_successful_choice

DEFAULT_WORDBOOK = "default"

SM2_KEYS = {"k": "know", "h": "hint", "u": "unknown"}


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ensure_learner() -> int:
    """Ensure there's a default learner and return the ID."""
    async with async_session() as db:
        stmt = select(Learner).order_by(Learner.id.asc()).limit(1)
        result = await db.execute(stmt)
        learner = result.scalar_one_or_none()
        if learner:
            return learner.id

        learner = Learner(name="Learner")
        db.add(learner)
        await db.commit()
        await db.refresh(learner)
        return learner.id


def _ask_sm2() -> str | None:
    while True:
        answer = input("  [k]now / [h]int / [u]nknown (q to quit): ").strip().lower()
        if answer == "q":
            return None
        if answer in SM2_KEYS:
            return SM2_KEYS[answer]
        if answer in SM2_KEYS.values():
            return answer


def _ask_fsrs() -> int | None:
    while True:
        answer = input("  1=Again 2=Hard 3=Good 4=Easy (q to quit): ").strip().lower()
        if answer == "q":
            return None
        try:
            return int(parse_rating(int(answer) if answer.isdigit() else answer))
        except InvalidChoiceError:
            continue


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a new word to a wordbook."""
    await ensure_db()

    async with async_session() as db:
        existing = (
            await db.execute(
                select(Word).where(and_(Word.wordbook_id == args.wordbook, Word.word == args.word))
            )
        ).scalar_one_or_none()

        if existing:
            print(f"  '{args.word}' already exists in {args.wordbook} (id={existing.id}).")
            return

        word = Word(
            wordbook_id=args.wordbook,
            word=args.word,
            definition=args.definition,
            phonetic=args.phonetic or None,
            example=args.example or None,
        )
        db.add(word)
        await db.commit()
        print(f"  Added '{args.word}' to {args.wordbook} (id={word.id}).")


async def cmd_plan(args: argparse.Namespace) -> None:
    """Show today's plan, creating it if needed."""
    await ensure_db()
    learner_id = await ensure_learner()
    plan_settings = PlanSettings.preset(args.preset) if args.preset else None

    async with async_session() as db:
        plan = await get_or_create_daily_plan(
            db, learner_id, args.wordbook, plan_settings=plan_settings
        )
        words = {
            word.id: word
            for word in (
                await db.execute(select(Word).where(Word.id.in_(plan.planned_items)))
            ).scalars()
        }

    progress = current_progress(plan)
    print(f"\n  Plan for {plan.plan_date} ({plan.wordbook_id})")
    print(f"  {plan.review_items_count} review + {plan.new_items_count} new = {plan.total_count} words")
    print(f"  Progress: {plan.completed_count}/{plan.total_count} ({progress.progress:.0f}%)\n")
    for i, item_id in enumerate(plan.planned_items, 1):
        word = words.get(item_id)
        mark = "x" if item_id in plan.completed_items else " "
        print(f"  [{mark}] {i:>3}. {word.word if word else item_id}")
    print()


async def cmd_review(args: argparse.Namespace) -> None:
    """Work through the remaining words of today's plan."""
    await ensure_db()
    learner_id = await ensure_learner()
    algorithm = parse_algorithm(args.algorithm)

    async with async_session() as db:
        plan = await get_or_create_daily_plan(db, learner_id, args.wordbook)
        remaining = [item for item in plan.planned_items if item not in plan.completed_items]

        if not remaining:
            print("\nNothing left in today's plan. You're all caught up!")
            return

        print("\n  Review Session")
        print(f"  {len(remaining)} of {plan.total_count} words left today\n")

        for i, item_id in enumerate(remaining, 1):
            word = await db.get(Word, item_id)
            if word is None:
                continue

            print(f"  [{i}/{len(remaining)}] {word.word}")
            start_time = time.time()
            signal = _ask_sm2() if algorithm is Algorithm.SM2 else _ask_fsrs()
            time_ms = int((time.time() - start_time) * 1000)
            if signal is None:
                print("\n  Session ended early.")
                break

            print(f"  {word.definition}")
            try:
                outcome = await submit_review(
                    db, learner_id, args.wordbook, item_id, signal, algorithm, time_ms=time_ms
                )
            except AlgorithmMismatchError as exc:
                print(f"  Skipped: {exc}\n")
                continue
            known = is_successful_choice(signal) if algorithm is Algorithm.SM2 else signal > 1
            plan = await record_plan_answer(
                db, learner_id, args.wordbook, item_id, known, time_spent=time_ms
            )
            print(f"  Next review in {outcome.card.interval} days\n")

    print("\n  Session Complete!" if plan.is_completed else "\n  Session paused.")
    print(
        f"  Done: {plan.completed_count}/{plan.total_count}  "
        f"Accuracy: {plan.stats.accuracy:.0f}%\n"
    )


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many words are due, listing the most overdue first."""
    await ensure_db()
    learner_id = await ensure_learner()
    now = utcnow()

    async with async_session() as db:
        due = (
            await db.execute(
                select(func.count(StudyRecord.id)).where(
                    and_(
                        StudyRecord.learner_id == learner_id,
                        StudyRecord.wordbook_id == args.wordbook,
                        StudyRecord.last_review.is_not(None),
                        StudyRecord.due <= now,
                    )
                )
            )
        ).scalar() or 0

        studied = (
            await db.execute(
                select(func.count(StudyRecord.id)).where(
                    and_(
                        StudyRecord.learner_id == learner_id,
                        StudyRecord.wordbook_id == args.wordbook,
                    )
                )
            )
        ).scalar() or 0

        total = (
            await db.execute(select(func.count(Word.id)).where(Word.wordbook_id == args.wordbook))
        ).scalar() or 0

        due_cards = await load_due_cards(db, learner_id, args.wordbook, limit=args.limit, now=now)
        due_words = [(await db.get(Word, card.item_id), card) for card in due_cards]

    print(f"  {due} words due, {total - studied} new words available")
    for word, card in due_words:
        print(f"    {word.word:<20} due {card.due:%Y-%m-%d} ({card.algorithm.value})")


async def cmd_budget(args: argparse.Namespace) -> None:
    """Show or change the daily word budgets."""
    await ensure_db()
    learner_id = await ensure_learner()

    if args.preset:
        chosen = PlanSettings.preset(args.preset)
    elif args.new is not None or args.review is not None:
        chosen = PlanSettings.validated(args.new, args.review)
    else:
        chosen = None

    async with async_session() as db:
        if chosen is not None:
            await save_learner_budget(db, learner_id, chosen)
        current = await learner_budget(db, learner_id)

    print(
        f"  Daily budget: {current.daily_new_words} new + {current.daily_review_words} review"
        f" = {current.daily_target} words"
    )
    if chosen is not None:
        print("  Takes effect from the next new plan.")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show learner statistics."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        cards, reviews = await load_learner_stats(db, learner_id, args.wordbook)

    print(f"\n  Vocab SRS Statistics ({args.wordbook})")
    print(f"  {'Total cards:':<20} {cards.total_cards}")
    print(f"  {'New:':<20} {cards.new_cards}")
    print(f"  {'Learning:':<20} {cards.learning_cards}")
    print(f"  {'Review:':<20} {cards.review_cards}")
    print(f"  {'Mastered:':<20} {cards.mastered_cards}")
    print(f"  {'Due now:':<20} {cards.due_today}")
    print(f"  {'Average mastery:':<20} {cards.average_mastery:.0f}%")
    if reviews.total_reviews:
        print(f"  {'FSRS reviews (30d):':<20} {reviews.total_reviews} ({reviews.accuracy}% recalled)")
    print()


def main() -> None:
    """Entry point for the Vocab SRS CLI application."""
    parser = argparse.ArgumentParser(
        prog="vocab_srs",
        description="Vocabulary spaced repetition",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-w", "--wordbook", default=DEFAULT_WORDBOOK, help="Wordbook to use")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add
    add_parser = subparsers.add_parser("add", help="Add a word to the wordbook")
    add_parser.add_argument("word", help="The word")
    add_parser.add_argument("definition", help="Its definition")
    add_parser.add_argument("-p", "--phonetic", default="", help="Pronunciation")
    add_parser.add_argument("-e", "--example", default="", help="Example sentence")

    # plan
    plan_parser = subparsers.add_parser("plan", help="Show today's plan")
    plan_parser.add_argument(
        "--preset", choices=["relaxed", "standard", "intensive"], help="Daily budget preset"
    )

    # review
    review_parser = subparsers.add_parser("review", help="Work through today's plan")
    review_parser.add_argument(
        "--algorithm",
        choices=[algorithm.value for algorithm in Algorithm],
        default=settings.default_algorithm,
        help="Scheduling algorithm for new cards",
    )

    # due
    due_parser = subparsers.add_parser("due", help="Show words due for review")
    due_parser.add_argument("--limit", type=int, default=10, help="How many due words to list")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # budget
    budget_parser = subparsers.add_parser("budget", help="Show or change your daily budget")
    budget_parser.add_argument("--new", type=int, help="New words per day (1-50)")
    budget_parser.add_argument("--review", type=int, help="Reviews per day (0-200)")
    budget_parser.add_argument(
        "--preset", choices=["relaxed", "standard", "intensive"], help="Use a preset budget"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "add": cmd_add,
        "plan": cmd_plan,
        "review": cmd_review,
        "due": cmd_due,
        "stats": cmd_stats,
        "budget": cmd_budget,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
