"""Persisted daily study plans."""

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class DailyPlanRecord(Base, TimestampMixin):
    """One plan per learner, wordbook and calendar day.

    ``version`` is SQLAlchemy's version counter: an UPDATE only succeeds if the
    row still carries the version that was loaded, so two concurrent answer
    submissions cannot silently overwrite each other.
    """

    __tablename__ = "daily_plans"
    __table_args__ = (
        UniqueConstraint("learner_id", "wordbook_id", "plan_date", name="uq_daily_plan"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), nullable=False)
    wordbook_id: Mapped[str] = mapped_column(String(100), nullable=False)
    plan_date: Mapped[date] = mapped_column(Date, nullable=False)
    planned_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_items_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_items_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    learner: Mapped["Learner"] = relationship(back_populates="daily_plans")  # type: ignore[name-defined] # noqa: F821
