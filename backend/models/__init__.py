"""SQLAlchemy ORM models for the vocabulary SRS database."""

from backend.models.base import Base
from backend.models.daily_plan import DailyPlanRecord
from backend.models.learner import Learner
from backend.models.review_log import ReviewLog
from backend.models.study_record import StudyRecord
from backend.models.word import Word

__all__ = ["Base", "DailyPlanRecord", "Learner", "ReviewLog", "StudyRecord", "Word"]
