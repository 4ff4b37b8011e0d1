"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Quiz question sets and subject chapter lists are stored as JSON columns;
the questions embedded in a quiz are never mutated after creation.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from sqlalchemy import JSON, Column, Index, text
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered account.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    """
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=_utcnow)


class Student(SQLModel, table=True):
    """Student profile owned by exactly one `User`."""
    __tablename__ = "students"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", unique=True, index=True)
    full_name: str
    stream: Optional[str] = None
    year_of_study: Optional[int] = None
    phone: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Subject(SQLModel, table=True):
    """Catalog subject with its ordered list of chapter names."""
    __tablename__ = "subjects"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    stream: Optional[str] = Field(default=None, index=True)
    chapters: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))


class Quiz(SQLModel, table=True):
    """A generated quiz attempt.

    The attempt is open while `completed_at` is null and becomes graded
    once `score` and `completed_at` are written. `questions_json` holds
    `{"questions": [{question, options, correct_answer, explanation}]}`.
    """
    __tablename__ = "quizzes"

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", index=True)
    subject_id: int = Field(foreign_key="subjects.id", index=True)
    chapter: str
    difficulty: str = "medium"
    questions_json: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    total_questions: int
    score: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def questions(self) -> List[Dict[str, Any]]:
        return list(self.questions_json.get("questions", []))


class Summary(SQLModel, table=True):
    """A study summary.

    Rows with `is_cached` set are the shared copy for a subject/chapter
    (at most one per pair, enforced by a partial unique index); the
    others are per-student deliveries of the same content.
    """
    __tablename__ = "summaries"
    __table_args__ = (
        Index(
            "uq_summaries_cached_subject_chapter",
            "subject_id",
            "chapter",
            unique=True,
            sqlite_where=text("is_cached = 1"),
            postgresql_where=text("is_cached"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", index=True)
    subject_id: int = Field(foreign_key="subjects.id", index=True)
    chapter: str
    specific_topic: Optional[str] = None
    ai_response: str
    is_cached: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
