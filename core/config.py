# ==================================================================================
# core/config.py: FastAPI Configuration (Drive storage + SendGrid + Google OAuth)
# ==================================================================================
import logging
import sys
from typing import List

from dotenv import load_dotenv
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # ------------------------
    # LOCAL MIRROR DATABASE
    # ------------------------
    # The mirror is a rebuildable index of the Drive documents, so an
    # in-memory database is a valid default.
    DATABASE_URL: str = "sqlite://"

    # ------------------------
    # SESSION / SECURITY CONFIG
    # ------------------------
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 60 * 24

    # ------------------------
    # SENDGRID EMAIL CONFIG
    # ------------------------
    SENDGRID_API_KEY: str | None = None
    MAIL_FROM: str | None = None

    # ------------------------
    # FRONTEND & BACKEND CONFIG
    # ------------------------
    FRONTEND_URL: str = "http://localhost:5173"
    BACKEND_URL: str = "http://localhost:8000"
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # ------------------------
    # GOOGLE DRIVE (remote document store)
    # ------------------------
    DRIVE_API_BASE_URL: str = "https://www.googleapis.com/drive/v3"
    DRIVE_UPLOAD_BASE_URL: str = "https://www.googleapis.com/upload/drive/v3"
    REMOTE_TIMEOUT_SECONDS: float = 30.0
    REMOTE_WRITE_MAX_ATTEMPTS: int = 3

    # ------------------------
    # GOOGLE OAUTH
    # ------------------------
    GOOGLE_OAUTH_AUTH_URL: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_OAUTH_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"
    REQUIRE_GMAIL_FOR_OWNERS: bool = True

    # ------------------------
    # GEMINI (AI insights)
    # ------------------------
    GEMINI_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODEL: str = "gemini-2.5-flash"

    # ------------------------
    # ENVIRONMENT SETTINGS
    # ------------------------
    ENVIRONMENT: str = "development"  # 'development' | 'production'
    DEBUG: bool = True

    @property
    def IS_PRODUCTION(self) -> bool:
        """Convenience helper to check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def OAUTH_REDIRECT_URI(self) -> str:
        return f"{self.BACKEND_URL.rstrip('/')}/auth/callback"

    def invitation_link(self, invitation_id: str) -> str:
        return f"{self.FRONTEND_URL.rstrip('/')}/invite/{invitation_id}"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ------------------------
# Global Settings Loader
# ------------------------
try:
    settings = Settings()
    logger.info("Environment: %s, Debug: %s", settings.ENVIRONMENT, settings.DEBUG)
    if settings.IS_PRODUCTION and settings.SECRET_KEY == "change-me-in-production":
        logger.error("SECRET_KEY must be set in production.")
        sys.exit(1)
except ValidationError as e:
    logger.error("Environment configuration error, missing or invalid settings: %s", e)
    sys.exit(1)
