"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./papergen.db"

    # Gemini API
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TIMEOUT_SECONDS: float = 120.0
    GEMINI_MAX_RETRIES: int = 3

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_ENABLED: bool = True
    EXTRACTION_CACHE_TTL: int = 3600  # 1 hour

    # Application
    APP_NAME: str = "Question Paper Generation Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Generation limits
    GENERATION_TIMEOUT_SECONDS: float = 300.0
    MAX_SOURCE_CHARS: int = 40000
    MAX_CIF_CHARS: int = 30000
    MIN_SOURCE_CHARS: int = 100
    MAX_UPLOAD_FILES: int = 10
    STRICT_MARKS_VALIDATION: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
