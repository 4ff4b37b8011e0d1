"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
students, subjects, quizzes, summaries). Repositories return SQLModel
objects and perform commits/refreshes where appropriate; they let
SQLAlchemy errors propagate so services can decide what is fatal.
"""

from datetime import datetime
from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class StudentRepository:
    """Lookups and upserts for `Student` profiles."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_user(self, user_id: int) -> Optional[models.Student]:
        """Return the profile owned by `user_id` or `None`."""
        stmt = select(models.Student).where(models.Student.user_id == user_id)
        return self.session.exec(stmt).first()

    def save(self, student: models.Student) -> models.Student:
        self.session.add(student)
        self.session.commit()
        self.session.refresh(student)
        return student


class SubjectRepository:
    """Read access to the subject catalog plus a simple create for seeding."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, subject_id: int) -> Optional[models.Subject]:
        return self.session.get(models.Subject, subject_id)

    def get_by_name(self, name: str) -> Optional[models.Subject]:
        stmt = select(models.Subject).where(models.Subject.name == name)
        return self.session.exec(stmt).first()

    def list_all(self, stream: Optional[str] = None) -> List[models.Subject]:
        """Return all subjects ordered by name, optionally for one stream."""
        stmt = select(models.Subject)
        if stream:
            stmt = stmt.where(models.Subject.stream == stream)
        return self.session.exec(stmt.order_by(models.Subject.name)).all()

    def create(self, subject: models.Subject) -> models.Subject:
        self.session.add(subject)
        self.session.commit()
        self.session.refresh(subject)
        return subject


class QuizRepository:
    """Persist quiz attempts and apply the one-time grading transition."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, quiz: models.Quiz) -> models.Quiz:
        self.session.add(quiz)
        self.session.commit()
        self.session.refresh(quiz)
        return quiz

    def get_for_student(self, quiz_id: int, student_id: int) -> Optional[models.Quiz]:
        """Return the quiz only when it belongs to `student_id`."""
        stmt = select(models.Quiz).where(
            models.Quiz.id == quiz_id,
            models.Quiz.student_id == student_id
        )
        return self.session.exec(stmt).first()

    def list_for_student(self, student_id: int) -> List[models.Quiz]:
        stmt = select(models.Quiz).where(models.Quiz.student_id == student_id).order_by(models.Quiz.id.desc())
        return self.session.exec(stmt).all()

    def mark_graded(self, quiz_id: int, score: int, completed_at: datetime) -> Optional[models.Quiz]:
        """Write `score`/`completed_at` only if the quiz is still open.

        Returns the refreshed quiz, or `None` when another request graded
        it first (zero rows matched the conditional update).
        """
        stmt = (
            update(models.Quiz)
            .where(models.Quiz.id == quiz_id, models.Quiz.completed_at.is_(None))
            .values(score=score, completed_at=completed_at)
        )
        result = self.session.connection().execute(stmt)
        self.session.commit()
        if result.rowcount == 0:
            return None
        return self.session.get(models.Quiz, quiz_id, populate_existing=True)


class SummaryRepository:
    """Cached and per-student summary rows."""
    def __init__(self, session: Session):
        self.session = session

    def get_cached(self, subject_id: int, chapter: str) -> Optional[models.Summary]:
        """Return the shared cached summary for a subject/chapter, if any.

        The key ignores `specific_topic`: whichever request filled the
        cache first (narrowed to a topic or not) supplies the content
        served to every later request for that chapter.
        """
        stmt = select(models.Summary).where(
            models.Summary.subject_id == subject_id,
            models.Summary.chapter == chapter,
            models.Summary.is_cached == True  # noqa: E712
        )
        return self.session.exec(stmt).first()

    def create(self, summary: models.Summary) -> models.Summary:
        self.session.add(summary)
        self.session.commit()
        self.session.refresh(summary)
        return summary

    def create_cached_if_absent(self, summary: models.Summary) -> models.Summary:
        """Insert a cached row unless one already exists for the pair.

        The unique index on cached rows decides the winner; on conflict
        the session is rolled back and the existing row is returned.
        """
        summary.is_cached = True
        try:
            return self.create(summary)
        except IntegrityError:
            self.session.rollback()
            existing = self.get_cached(summary.subject_id, summary.chapter)
            if existing is None:
                raise
            return existing

    def list_for_student(self, student_id: int) -> List[models.Summary]:
        """List delivered (non-cached) summaries for a student, newest first."""
        stmt = select(models.Summary).where(
            models.Summary.student_id == student_id,
            models.Summary.is_cached == False  # noqa: E712
        ).order_by(models.Summary.id.desc())
        return self.session.exec(stmt).all()
