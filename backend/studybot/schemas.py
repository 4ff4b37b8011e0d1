"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Request field names follow the JSON
contract the front end already sends (`subject_id`, `num_questions`...).
"""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class CredentialsIn(BaseModel):
    """Payload for sign-up/sign-in endpoints."""
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class StudentProfileIn(BaseModel):
    """Onboarding payload creating or updating the caller's profile."""
    full_name: str = Field(min_length=1)
    stream: Optional[str] = None
    year_of_study: Optional[int] = Field(default=None, ge=1, le=12)
    phone: Optional[str] = None


class StudentOut(BaseModel):
    id: int
    full_name: str
    stream: Optional[str] = None
    year_of_study: Optional[int] = None
    phone: Optional[str] = None


class SubjectOut(BaseModel):
    id: int
    name: str
    stream: Optional[str] = None
    chapters: List[str] = []


class GenerateQuizIn(BaseModel):
    """Request body for `generate-quiz`."""
    subject_id: int
    chapter: str = Field(min_length=1)
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    num_questions: int = Field(default=5, ge=1, le=20)


class GenerateSummaryIn(BaseModel):
    """Request body for `generate-summary`."""
    subject_id: int
    chapter: str = Field(min_length=1)
    specific_topic: Optional[str] = None


class SubmitQuizIn(BaseModel):
    """Answers are option labels aligned by index with the quiz questions."""
    quiz_id: int
    answers: List[Optional[str]]
