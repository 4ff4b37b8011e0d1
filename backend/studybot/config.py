"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    DATABASE_URL: str
    OPENAI_API_KEY: str
    OPENAI_BASE_URL: str
    OPENAI_MODEL: str
    OPENAI_TIMEOUT_SECONDS: float
    QUIZ_MAX_TOKENS: int
    QUIZ_TEMPERATURE: float
    SUMMARY_MAX_TOKENS: int
    SUMMARY_TEMPERATURE: float
    LOG_LEVEL: str
    HOST: str
    PORT: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'studybot.db'}")
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
        self.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
        self.QUIZ_MAX_TOKENS = int(os.getenv("QUIZ_MAX_TOKENS", "2000"))
        self.QUIZ_TEMPERATURE = float(os.getenv("QUIZ_TEMPERATURE", "0.7"))
        self.SUMMARY_MAX_TOKENS = int(os.getenv("SUMMARY_MAX_TOKENS", "2000"))
        self.SUMMARY_TEMPERATURE = float(os.getenv("SUMMARY_TEMPERATURE", "0.6"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.HOST = os.getenv("HOST", "127.0.0.1")
        self.PORT = int(os.getenv("PORT", "8000"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if not 0.0 <= self.QUIZ_TEMPERATURE <= 2.0 or not 0.0 <= self.SUMMARY_TEMPERATURE <= 2.0:
            raise RuntimeError("completion temperatures must be between 0 and 2")


settings = Settings()
