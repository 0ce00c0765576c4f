"""Shared fixtures.

The application engine is pointed at a throwaway SQLite file before any
``backend`` module is imported; database tests get their own engine per test.
"""

import os
import tempfile

os.environ.setdefault(
    "VOCAB_SRS_DATABASE_URL",
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='vocab_srs_tests_')}/app.db",
)

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from backend.models import Base, Learner, Word  # noqa: E402

WORDBOOK = "toefl"

WORDS = [
    ("abandon", "to leave behind"),
    ("benevolent", "kind and generous"),
    ("candid", "truthful and straightforward"),
    ("diligent", "showing care in one's work"),
    ("eloquent", "fluent and persuasive"),
]


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'srs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def wordbook(db):
    """A learner and a five-word wordbook. Returns (learner_id, word_ids)."""
    learner = Learner(name="Test Learner")
    words = [Word(wordbook_id=WORDBOOK, word=word, definition=definition) for word, definition in WORDS]
    db.add(learner)
    db.add_all(words)
    await db.commit()
    return learner.id, [word.id for word in words]
