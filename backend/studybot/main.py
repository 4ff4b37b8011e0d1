"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints used by the Study Bot front end.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Every failure is rendered as
`{"error": message}` with the status code of its error kind.

Endpoints implemented:
- POST /auth/signup
- POST /auth/signin
- GET /students/me
- POST /students/me
- GET /subjects
- POST /functions/generate-quiz
- POST /functions/generate-summary
- POST /functions/submit-quiz
- GET /quizzes
- GET /summaries
- GET /health
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlmodel import Session
from typing import List, Optional
import json
import logging
import time
import uuid
import uvicorn
from .database import create_db_and_tables, get_session
from . import services, repositories, models
from .auth import get_current_user, get_current_student
from .completion import CompletionGateway, get_completion_gateway
from .config import settings
from .errors import StudyBotError
from .schemas import (
    CredentialsIn,
    GenerateQuizIn,
    GenerateSummaryIn,
    StudentOut,
    StudentProfileIn,
    SubjectOut,
    SubmitQuizIn,
    TokenOut,
)

app = FastAPI(title="Study Bot API")
logger = logging.getLogger("studybot.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
)

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        response = JSONResponse(status_code=500, content={"error": "Internal server error"})
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(StudyBotError)
async def studybot_error_handler(request: Request, exc: StudyBotError):
    logger.warning("%s on %s: %s", exc.__class__.__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(parts) or "invalid request"})


def _quiz_payload(quiz: models.Quiz) -> dict:
    return {
        'id': quiz.id,
        'student_id': quiz.student_id,
        'subject_id': quiz.subject_id,
        'chapter': quiz.chapter,
        'difficulty': quiz.difficulty,
        'questions_json': quiz.questions_json,
        'total_questions': quiz.total_questions,
        'score': quiz.score,
        'completed_at': quiz.completed_at.isoformat() if quiz.completed_at else None,
        'created_at': quiz.created_at.isoformat() if quiz.created_at else None,
    }


@app.post('/auth/signup')
def signup(payload: CredentialsIn, db: Session = Depends(get_session)):
    """Create an account and return a token for immediate onboarding."""
    auth = services.AuthService(db)
    try:
        user = auth.register(payload.email, payload.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'id': user.id, 'email': user.email, 'access_token': services.issue_token(user)}


@app.post('/auth/signin', response_model=TokenOut)
def signin(payload: CredentialsIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a short-lived JWT token.

    The returned token contains `user_id` and `email` and is signed
    using the configured JWT secret.
    """
    token = services.AuthService(db).authenticate(payload.email, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.get('/students/me', response_model=StudentOut)
def get_profile(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.ProfileService(db).get(user)


@app.post('/students/me', response_model=StudentOut)
def save_profile(payload: StudentProfileIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Create or update the caller's student profile (onboarding)."""
    return services.ProfileService(db).upsert(user, payload.model_dump(exclude_unset=True))


@app.get('/subjects', response_model=List[SubjectOut])
def list_subjects(stream: Optional[str] = None, db: Session = Depends(get_session)):
    """List catalog subjects, optionally restricted to one stream."""
    return repositories.SubjectRepository(db).list_all(stream)


@app.post('/functions/generate-quiz')
def generate_quiz(
    payload: GenerateQuizIn,
    db: Session = Depends(get_session),
    student: models.Student = Depends(get_current_student),
    gateway: CompletionGateway = Depends(get_completion_gateway),
):
    """Generate a quiz with the completion API and store it as an open attempt.

    The full question set, correct answers and explanations included,
    is returned immediately; the front end decides when to reveal them.
    """
    quiz = services.QuizGenerator(db, gateway).generate(
        student,
        payload.subject_id,
        payload.chapter,
        difficulty=payload.difficulty,
        count=payload.num_questions,
    )
    return {'success': True, 'quiz_id': quiz.id, 'questions': quiz.questions}


@app.post('/functions/generate-summary')
def generate_summary(
    payload: GenerateSummaryIn,
    db: Session = Depends(get_session),
    student: models.Student = Depends(get_current_student),
    gateway: CompletionGateway = Depends(get_completion_gateway),
):
    """Return a study summary, from the shared cache when one exists."""
    result = services.SummaryGenerator(db, gateway).generate(
        student, payload.subject_id, payload.chapter, payload.specific_topic
    )
    return {
        'success': True,
        'summary_id': result.summary_id,
        'content': result.content,
        'from_cache': result.from_cache,
    }


@app.post('/functions/submit-quiz')
def submit_quiz(
    payload: SubmitQuizIn,
    db: Session = Depends(get_session),
    student: models.Student = Depends(get_current_student),
):
    """Grade the caller's open quiz attempt once and return the breakdown."""
    result = services.QuizGrader(db).grade(student, payload.quiz_id, payload.answers)
    return {
        'success': True,
        'score': result.score,
        'correct_answers': result.correct_answers,
        'total_questions': result.total_questions,
        'percentage': result.score,
        'results': result.results,
        'quiz': _quiz_payload(result.quiz),
    }


@app.get('/quizzes')
def list_quizzes(db: Session = Depends(get_session), student: models.Student = Depends(get_current_student)):
    """Quiz history for the caller, newest first."""
    return [_quiz_payload(q) for q in repositories.QuizRepository(db).list_for_student(student.id)]


@app.get('/summaries')
def list_summaries(db: Session = Depends(get_session), student: models.Student = Depends(get_current_student)):
    """Summaries delivered to the caller, newest first."""
    return [
        {
            'id': s.id,
            'subject_id': s.subject_id,
            'chapter': s.chapter,
            'specific_topic': s.specific_topic,
            'content': s.ai_response,
            'created_at': s.created_at.isoformat() if s.created_at else None,
        }
        for s in repositories.SummaryRepository(db).list_for_student(student.id)
    ]


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


def run():
    """Serve the API with uvicorn (`studybot-api` console script)."""
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
