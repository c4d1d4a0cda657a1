"""
Application configuration and environment variables.
"""

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # OpenAI API
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    COUNSELOR_MODEL: str = os.getenv("COUNSELOR_MODEL", "gpt-4.1")
    AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))
    AI_MAX_RETRIES: int = int(os.getenv("AI_MAX_RETRIES", "3"))

    # Review mechanics
    MIN_REVIEW_CHARS: int = int(os.getenv("MIN_REVIEW_CHARS", "50"))
    FULL_REVIEW_MIN_SUGGESTIONS: int = int(os.getenv("FULL_REVIEW_MIN_SUGGESTIONS", "20"))
    FULL_REVIEW_MAX_SUGGESTIONS: int = int(os.getenv("FULL_REVIEW_MAX_SUGGESTIONS", "50"))
    TARGETED_MAX_SUGGESTIONS: int = int(os.getenv("TARGETED_MAX_SUGGESTIONS", "10"))
    BULK_SUGGESTION_THRESHOLD: int = int(os.getenv("BULK_SUGGESTION_THRESHOLD", "3"))
    DEFAULT_PROMPT: str = os.getenv("DEFAULT_PROMPT", "Personal statement")

    # App settings
    APP_NAME: str = "Essay Assist"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

    # CORS
    CORS_ORIGINS: list = ["*"]  # Restrict in production


settings = Settings()
