"""Persisted memory state for one learner-word pair."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base, TimestampMixin


class StudyRecord(Base, TimestampMixin):
    """Scheduling state for a learner-word pair, tagged with the algorithm that produced it.

    SM-2 uses ``easiness_factor``; FSRS uses ``difficulty``, ``stability`` and
    ``retrievability``. The columns for the other algorithm are left at their defaults.
    """

    __tablename__ = "study_records"
    __table_args__ = (
        UniqueConstraint("learner_id", "wordbook_id", "word_id", name="uq_study_record"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), nullable=False)
    wordbook_id: Mapped[str] = mapped_column(String(100), nullable=False)
    word_id: Mapped[int] = mapped_column(ForeignKey("words.id"), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(10), nullable=False, default="sm2")  # sm2, fsrs
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="new")
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lapses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # Days
    easiness_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    stability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    retrievability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    elapsed_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    due: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_review: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    learner: Mapped["Learner"] = relationship(back_populates="study_records")  # type: ignore[name-defined] # noqa: F821
    word: Mapped["Word"] = relationship(back_populates="study_records")  # type: ignore[name-defined] # noqa: F821
    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="study_record")  # type: ignore[name-defined] # noqa: F821
