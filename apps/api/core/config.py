"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the API and the worker.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins over the POSTGRES_* parts when set (e.g. "sqlite://" in tests)
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="gymbro")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # JWT Authentication - REQUIRED for token signing
    SECRET_KEY: str = Field(
        default=...,
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)
    # Generation endpoints each start an LLM job
    RATE_LIMIT_GENERATION_PER_MINUTE: int = Field(default=5)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # LLM providers (both speak the OpenAI chat-completions protocol)
    GROQ_API_KEY: Optional[str] = Field(default=None)
    GROQ_MODEL: str = Field(default="llama-3.1-70b-versatile")
    GROQ_BASE_URL: str = Field(default="https://api.groq.com/openai/v1")
    MISTRAL_API_KEY: Optional[str] = Field(default=None)
    MISTRAL_MODEL: str = Field(default="mistral-small-2503")
    MISTRAL_BASE_URL: str = Field(default="https://api.mistral.ai/v1")
    AI_REQUEST_TIMEOUT_S: float = Field(default=120.0)

    # Plan generation
    MEAL_PLAN_MAX_TOKENS: int = Field(default=12000)
    MEAL_PLAN_FALLBACK_MAX_TOKENS: int = Field(default=16000)
    WORKOUT_PLAN_MAX_TOKENS: int = Field(default=6000)
    DEFAULT_CUISINE: str = Field(default="filipino")
    PLAN_EXPECTED_GENERATION_SECONDS: int = Field(default=45)
    PLAN_GENERATION_STALE_AFTER_MINUTES: int = Field(default=15)
    PLAN_STATUS_POLL_INTERVAL_MS: int = Field(default=2000)

    # Exercise catalog (external, read-only)
    EXERCISEDB_API_URL: str = Field(default="https://gym-bro-exercisedb-api-v1.vercel.app/api/v1")
    EXERCISE_CATALOG_TIMEOUT_S: float = Field(default=10.0)
    EXERCISE_CATALOG_BREAKER_THRESHOLD: int = Field(default=3)
    EXERCISE_CATALOG_BREAKER_RESET_S: int = Field(default=60)

    # Cache Configuration
    CACHE_TTL_DEFAULT: int = Field(default=300)  # 5 minutes
    CACHE_TTL_EXERCISES: int = Field(default=3600)  # 1 hour

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)


# Global settings instance
settings = Settings()
