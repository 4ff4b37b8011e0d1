"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
the prompt builders and the completion gateway. Services are thin:
they validate, execute domain logic and persist aggregates via
repositories, raising `StudyBotError` subclasses on failure.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from passlib.context import CryptContext
import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from . import models, repositories
from .completion import CompletionGateway
from .config import settings
from .errors import (
    AlreadyGraded,
    MalformedGeneration,
    PersistenceError,
    ProfileNotFound,
    QuizNotFound,
    SubjectNotFound,
)
from .prompts import (
    OPTION_LABELS,
    QUIZ_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_quiz_prompt,
    build_summary_prompt,
)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger("studybot.services")
PROFILE_FIELDS = ("full_name", "stream", "year_of_study", "phone")


class AuthService:
    """Account operations (sign-up + sign-in)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, email: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Raises ValueError if the email is already registered.
        """
        email = email.strip().lower()
        if self.user_repo.get_by_email(email):
            raise ValueError("email already registered")
        u = models.User(email=email, password_hash=PWD_CTX.hash(password))
        return self.user_repo.create(u)

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_email(email.strip().lower())
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return issue_token(user)


def issue_token(user: models.User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {"user_id": user.id, "email": user.email, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class ProfileService:
    """Student onboarding: create or update the caller's profile."""
    def __init__(self, session: Session):
        self.session = session
        self.student_repo = repositories.StudentRepository(session)

    def get(self, user: models.User) -> models.Student:
        student = self.student_repo.get_by_user(user.id)
        if not student:
            raise ProfileNotFound()
        return student

    def upsert(self, user: models.User, fields: dict) -> models.Student:
        """Create the profile, or update only the keys present in `fields`.

        Fields the client did not send keep their stored values.
        """
        student = self.student_repo.get_by_user(user.id)
        if student is None:
            student = models.Student(user_id=user.id, full_name=fields["full_name"])
        for name in PROFILE_FIELDS:
            if name in fields:
                setattr(student, name, fields[name])
        return self.student_repo.save(student)


class CatalogService:
    """Import catalog subjects, skipping names already present."""
    def __init__(self, session: Session):
        self.session = session
        self.subject_repo = repositories.SubjectRepository(session)

    def import_subjects(self, entries: List[dict]) -> dict:
        """Create `Subject` rows from `{name, stream?, chapters?}` dicts.

        Returns counts of created and skipped entries plus per-item
        validation errors.
        """
        created = 0
        skipped = 0
        errors = []
        for idx, e in enumerate(entries):
            name = e.get('name') if isinstance(e, dict) else None
            if not isinstance(name, str) or not name.strip():
                errors.append({'index': idx, 'error': 'missing name'})
                continue
            chapters = e.get('chapters') or []
            if not isinstance(chapters, list) or not all(isinstance(c, str) for c in chapters):
                errors.append({'index': idx, 'error': 'chapters must be a list of strings'})
                continue
            if self.subject_repo.get_by_name(name.strip()):
                skipped += 1
                continue
            self.subject_repo.create(models.Subject(name=name.strip(), stream=e.get('stream'), chapters=chapters))
            created += 1
        return {'created': created, 'skipped': skipped, 'errors': errors}


def parse_questions(raw: str, expected_count: int) -> List[Dict[str, Any]]:
    """Parse completion text into a validated list of question dicts.

    The text must be a single JSON object with a `questions` list of
    exactly `expected_count` items, each with a question, four options,
    a correct label in A-D and an explanation.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("quiz generation is not valid JSON: %.500s", raw)
        raise MalformedGeneration()
    questions = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(questions, list) or not questions:
        raise MalformedGeneration("AI response is missing the questions array")
    if len(questions) != expected_count:
        raise MalformedGeneration(f"AI returned {len(questions)} questions, expected {expected_count}")
    cleaned = []
    for idx, q in enumerate(questions):
        if not isinstance(q, dict):
            raise MalformedGeneration(f"question {idx} is not an object")
        text = q.get("question")
        options = q.get("options")
        correct = q.get("correct_answer")
        explanation = q.get("explanation")
        if not isinstance(text, str) or not text.strip():
            raise MalformedGeneration(f"question {idx} has no text")
        if not isinstance(options, list) or len(options) != len(OPTION_LABELS) or not all(isinstance(o, str) for o in options):
            raise MalformedGeneration(f"question {idx} must have exactly 4 options")
        if correct not in OPTION_LABELS:
            raise MalformedGeneration(f"question {idx} has an invalid correct_answer")
        if not isinstance(explanation, str):
            raise MalformedGeneration(f"question {idx} has no explanation")
        cleaned.append({
            'question': text,
            'options': options,
            'correct_answer': correct,
            'explanation': explanation,
        })
    return cleaned


def percent_score(correct: int, total: int) -> int:
    """Integer percentage rounded half up (1/3 -> 33, 1/8 -> 13)."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


class QuizGenerator:
    """Generate a multiple-choice quiz and store it as an open attempt."""
    def __init__(self, session: Session, gateway: CompletionGateway):
        self.session = session
        self.gateway = gateway
        self.subject_repo = repositories.SubjectRepository(session)
        self.quiz_repo = repositories.QuizRepository(session)

    def generate(self, student: models.Student, subject_id: int, chapter: str,
                 difficulty: str = "medium", count: int = 5) -> models.Quiz:
        subject = self.subject_repo.get(subject_id)
        if not subject:
            raise SubjectNotFound()
        logger.info("generating quiz student=%s subject=%s chapter=%r difficulty=%s count=%d",
                    student.id, subject_id, chapter, difficulty, count)
        raw = self.gateway.complete(
            build_quiz_prompt(subject.name, chapter, difficulty, count),
            system=QUIZ_SYSTEM_PROMPT,
            max_tokens=settings.QUIZ_MAX_TOKENS,
            temperature=settings.QUIZ_TEMPERATURE,
        )
        questions = parse_questions(raw, count)
        quiz = models.Quiz(
            student_id=student.id,
            subject_id=subject_id,
            chapter=chapter,
            difficulty=difficulty,
            questions_json={'questions': questions},
            total_questions=len(questions),
        )
        try:
            return self.quiz_repo.create(quiz)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("failed to save quiz: %s", e)
            raise PersistenceError("Failed to save quiz")


@dataclass
class SummaryResult:
    summary_id: int
    content: str
    from_cache: bool


class SummaryGenerator:
    """Deliver a study summary, reusing the shared cached copy when present.

    The first request for a subject/chapter pays for the generation and
    stores it twice: once as the shared cached row and once as the
    caller's delivery row. Later requests only copy the cached content.
    The cache is keyed on subject/chapter only, so a topic-narrowed first
    generation is also what later untargeted requests receive.
    """
    def __init__(self, session: Session, gateway: CompletionGateway):
        self.session = session
        self.gateway = gateway
        self.subject_repo = repositories.SubjectRepository(session)
        self.summary_repo = repositories.SummaryRepository(session)

    def generate(self, student: models.Student, subject_id: int, chapter: str,
                 specific_topic: Optional[str] = None) -> SummaryResult:
        subject = self.subject_repo.get(subject_id)
        if not subject:
            raise SubjectNotFound()

        cached = self.summary_repo.get_cached(subject_id, chapter)
        if cached:
            logger.info("summary cache hit subject=%s chapter=%r", subject_id, chapter)
            delivered = self._deliver(student, subject_id, chapter, specific_topic, cached.ai_response)
            return SummaryResult(summary_id=delivered.id, content=delivered.ai_response, from_cache=True)

        logger.info("summary cache miss subject=%s chapter=%r", subject_id, chapter)
        content = self.gateway.complete(
            build_summary_prompt(subject.name, chapter, specific_topic),
            system=SUMMARY_SYSTEM_PROMPT,
            max_tokens=settings.SUMMARY_MAX_TOKENS,
            temperature=settings.SUMMARY_TEMPERATURE,
        )
        self._store_cache(student, subject_id, chapter, specific_topic, content)
        delivered = self._deliver(student, subject_id, chapter, specific_topic, content)
        return SummaryResult(summary_id=delivered.id, content=content, from_cache=False)

    def _store_cache(self, student: models.Student, subject_id: int, chapter: str,
                     specific_topic: Optional[str], content: str) -> None:
        row = models.Summary(
            student_id=student.id,
            subject_id=subject_id,
            chapter=chapter,
            specific_topic=specific_topic,
            ai_response=content,
            is_cached=True,
        )
        try:
            self.summary_repo.create_cached_if_absent(row)
        except SQLAlchemyError as e:
            # caching is best effort; the caller still gets the content
            self.session.rollback()
            logger.error("failed to cache summary subject=%s chapter=%r: %s", subject_id, chapter, e)

    def _deliver(self, student: models.Student, subject_id: int, chapter: str,
                 specific_topic: Optional[str], content: str) -> models.Summary:
        row = models.Summary(
            student_id=student.id,
            subject_id=subject_id,
            chapter=chapter,
            specific_topic=specific_topic,
            ai_response=content,
            is_cached=False,
        )
        try:
            return self.summary_repo.create(row)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("failed to save summary: %s", e)
            raise PersistenceError("Failed to save summary")


@dataclass
class GradingResult:
    quiz: models.Quiz
    score: int
    correct_answers: int
    total_questions: int
    results: List[Dict[str, Any]] = field(default_factory=list)


class QuizGrader:
    """Grade an open quiz attempt exactly once."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)

    def grade(self, student: models.Student, quiz_id: int, answers: Sequence[Optional[str]]) -> GradingResult:
        """Compare `answers[i]` with the stored label of question `i`.

        Missing answers count as wrong and extra answers are ignored.
        A quiz owned by another student is reported as not found.
        """
        quiz = self.quiz_repo.get_for_student(quiz_id, student.id)
        if not quiz:
            raise QuizNotFound()
        if quiz.completed_at is not None:
            raise AlreadyGraded()

        questions = quiz.questions
        correct = 0
        results = []
        for i, q in enumerate(questions):
            given = answers[i] if i < len(answers) else None
            is_correct = given == q.get('correct_answer')
            if is_correct:
                correct += 1
            results.append({
                'question_index': i,
                'question': q.get('question'),
                'user_answer': given,
                'correct_answer': q.get('correct_answer'),
                'is_correct': is_correct,
                'explanation': q.get('explanation'),
            })
        total = len(questions)
        score = percent_score(correct, total)

        try:
            graded = self.quiz_repo.mark_graded(quiz.id, score, datetime.now(timezone.utc))
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("failed to update quiz %s: %s", quiz_id, e)
            raise PersistenceError("Failed to update quiz")
        if graded is None:
            raise AlreadyGraded()
        logger.info("quiz %s scored %d/%d (%d%%)", quiz_id, correct, total, score)
        return GradingResult(quiz=graded, score=score, correct_answers=correct,
                             total_questions=total, results=results)
