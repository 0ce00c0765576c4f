from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Word(Base, TimestampMixin):
    __tablename__ = "words"
    __table_args__ = (Index("ix_words_wordbook", "wordbook_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    wordbook_id: Mapped[str] = mapped_column(String(100), nullable=False)
    word: Mapped[str] = mapped_column(String(200), nullable=False)
    definition: Mapped[str] = mapped_column(String(500), nullable=False)
    phonetic: Mapped[str | None] = mapped_column(String(200), nullable=True)
    example: Mapped[str | None] = mapped_column(Text, nullable=True)  # Example sentence

    study_records: Mapped[list["StudyRecord"]] = relationship(back_populates="word")  # type: ignore[name-defined] # noqa: F821
