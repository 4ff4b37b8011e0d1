"""Authentication helpers and FastAPI security dependencies.

This module resolves a bearer credential into the calling `User` and
then into the `Student` profile that scopes every quiz and summary
operation. Failures raise `Unauthenticated` or `ProfileNotFound`, which
the application's exception handler renders as JSON errors.

A missing or non-bearer `Authorization` header is rejected before any
database access.
"""

from typing import Optional
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session
from .config import settings
from .database import get_session
from .errors import Unauthenticated, ProfileNotFound
from . import models, repositories

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `Unauthenticated`
    on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated('token expired')
    except jwt.InvalidTokenError:
        raise Unauthenticated('Invalid token')


def resolve_user(credentials: Optional[HTTPAuthorizationCredentials], session: Session) -> models.User:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated('No authorization header')
    payload = decode_token(credentials.credentials)
    user_id = payload.get('user_id')
    if not user_id:
        raise Unauthenticated('invalid token payload')
    user = repositories.UserRepository(session).get(user_id)
    if not user:
        raise Unauthenticated('user not found')
    return user


def resolve_student(credentials: Optional[HTTPAuthorizationCredentials], session: Session) -> models.Student:
    """Resolve a bearer credential all the way to a `Student` profile."""
    user = resolve_user(credentials, session)
    student = repositories.StudentRepository(session).get_by_user(user.id)
    if not student:
        raise ProfileNotFound()
    return student


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency returning the authenticated user (no profile required)."""
    return resolve_user(credentials, session)


def get_current_student(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.Student:
    """FastAPI dependency returning the caller's `Student` profile.

    Used by the quiz and summary endpoints, which all require a
    completed onboarding.
    """
    return resolve_student(credentials, session)
