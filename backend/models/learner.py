from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    """Someone studying wordbooks, with their saved daily budgets.

    A budget left as None falls back to the configured default.
    """

    __tablename__ = "learners"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    daily_new_words: Mapped[int | None] = mapped_column(Integer, nullable=True)
    daily_review_words: Mapped[int | None] = mapped_column(Integer, nullable=True)

    study_records: Mapped[list["StudyRecord"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
    daily_plans: Mapped[list["DailyPlanRecord"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
