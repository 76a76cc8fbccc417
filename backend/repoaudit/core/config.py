from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Repo Testability Agent"

    # Database
    DATABASE_URL: str = "sqlite:///./repoaudit.db"

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Blob storage (units, verdicts, report backups)
    STORAGE_ROOT: str = "./storage"

    # Repository fetch
    GITHUB_ARCHIVE_BASE: str = "https://codeload.github.com"
    GITHUB_TOKEN: Optional[str] = None
    FETCH_TIMEOUT: float = 60.0

    # LLM
    LLM_API_KEY: str
    LLM_MODEL: str = "glm-4-air"
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_TOKENS: int = 1000
    LLM_SUMMARY_MAX_TOKENS: int = 500
    LLM_TIMEOUT: int = 60
    LLM_MAX_RETRIES: int = 2

    # Pipeline
    ANALYSIS_CONCURRENCY: int = 50
    UPLOAD_CONCURRENCY: int = 16
    UNIT_TIMEOUT_SECONDS: float = 120.0
    BATCH_DEADLINE_SECONDS: float = 900.0
    MAX_CONTENT_CHARS: int = 50000
    DETAIL_BATCH_SIZE: int = 50

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "logs/app.log"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding='utf-8', case_sensitive=True, extra='ignore')

settings = Settings()
