"""
Application configuration
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Repo Insight"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Database (MongoDB)
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "repo_insight"

    # Redis (hot cache tier + progress pub/sub)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # GitHub
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_REQUEST_TIMEOUT: float = 30.0

    # Summarizer (external LLM service)
    SUMMARIZER_URL: Optional[str] = None
    SUMMARIZER_TIMEOUT: float = 120.0

    # Analysis jobs
    ANALYSIS_DEFAULT_MAX_FILE_SIZE: int = 1024 * 1024  # 1MB
    ANALYSIS_DEFAULT_MAX_FILES: int = 10000
    ANALYSIS_STORED_FILE_INDEX_LIMIT: int = 1000
    ANALYSIS_CACHE_HOURS: int = 24
    ANALYSIS_STUCK_MINUTES: int = 10
    ANALYSIS_STATUS_CACHE_TTL: int = 300  # 5 minutes
    ANALYSIS_RETENTION_DAYS: int = 30

    # Git history two-tier cache
    GIT_HISTORY_DURABLE_STALENESS_SECONDS: int = 6 * 60 * 60
    GIT_HISTORY_FAST_TTL_SECONDS: int = 30 * 60

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
