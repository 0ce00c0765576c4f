from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Vocab SRS"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'vocab_srs.db'}"
    default_algorithm: str = "sm2"  # sm2 or fsrs
    daily_new_words: int = 16
    daily_review_words: int = 48
    daily_target: int = 64
    target_retention: float = 0.9
    maximum_interval: int = 36500
    enable_fuzz: bool = True
    debug: bool = False

    model_config = {"env_prefix": "VOCAB_SRS_", "env_file": ".env"}


settings = Settings()
