"""Error taxonomy shared by services and HTTP controllers.

Every error carries the HTTP status it maps to; the application's
exception handler renders all of them as `{"error": message}`.
"""

from typing import Optional


class StudyBotError(Exception):
    """Base class for expected, user-visible failures."""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(StudyBotError):
    status_code = 401
    default_message = "Invalid token"


class ProfileNotFound(StudyBotError):
    status_code = 404
    default_message = "Student not found"


class SubjectNotFound(StudyBotError):
    status_code = 404
    default_message = "Subject not found"


class QuizNotFound(StudyBotError):
    status_code = 404
    default_message = "Quiz not found or access denied"


class AlreadyGraded(StudyBotError):
    status_code = 409
    default_message = "Quiz already completed"


class UpstreamUnavailable(StudyBotError):
    status_code = 503
    default_message = "Completion API unavailable"


class UpstreamError(StudyBotError):
    """The completion API answered with a non-success status."""
    status_code = 502

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"Completion API error: {status}")


class MalformedGeneration(StudyBotError):
    status_code = 502
    default_message = "Invalid JSON response from AI"


class PersistenceError(StudyBotError):
    status_code = 500
    default_message = "Failed to save record"
