"""
Application configuration using Pydantic Settings
"""
import re
from typing import List

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from langshadow.core.exceptions import InvalidLocaleError

LOCALE_PATTERN = re.compile(r"^[a-z]{2,3}(-[A-Z]{2})?$")


def check_locale(locale: str) -> str:
    """
    Validate a locale code (ISO 639-1/639-2, optionally with region).

    Raises:
        InvalidLocaleError: if the code does not look like 'en', 'fil' or 'en-US'
    """
    if not isinstance(locale, str) or not LOCALE_PATTERN.match(locale):
        raise InvalidLocaleError(
            f"Invalid locale format '{locale}'. Use ISO format (e.g., 'en', 'fr', 'en-US')."
        )
    return locale


class MultiLangConfig(BaseModel):
    """
    Configuration threaded through the replication engine, reconciler,
    creation hook and programmatic API.
    """

    languages: List[str] = Field(default_factory=lambda: ["en"])
    fallback_language: str = "en"
    auto_generate: bool = True
    observe_during_console: bool = False
    tables: List[str] = Field(default_factory=list)
    max_suffix_attempts: int = Field(default=100, ge=1)
    conflict_retries: int = Field(default=3, ge=0)

    @field_validator("languages")
    @classmethod
    def _validate_languages(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one language must be configured")
        unique = []
        for locale in value:
            check_locale(locale)
            if locale not in unique:
                unique.append(locale)
        return unique

    @field_validator("fallback_language")
    @classmethod
    def _validate_fallback(cls, value: str) -> str:
        return check_locale(value)

    @model_validator(mode="after")
    def _fallback_is_configured(self):
        if self.fallback_language not in self.languages:
            raise ValueError(
                f"Fallback language '{self.fallback_language}' must be one of {self.languages}"
            )
        return self

    @property
    def language_count(self) -> int:
        return len(self.languages)


class Settings(BaseSettings):
    """Application settings"""

    # App
    APP_NAME: str = "langshadow"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./langshadow.db"

    # Redis (replication task queue)
    REDIS_URL: str = "redis://localhost:6379"
    TASK_QUEUE_NAME: str = "langshadow:replication"
    TASK_MAX_TRIES: int = 3
    WORKER_CONCURRENCY: int = 2

    # Languages
    LANGUAGES: List[str] = ["en"]
    FALLBACK_LANGUAGE: str = "en"
    AUTO_GENERATE: bool = True
    OBSERVE_DURING_CONSOLE: bool = False

    # Participating tables
    TABLES: List[str] = []

    # Replication tuning
    MAX_SUFFIX_ATTEMPTS: int = 100
    CONFLICT_RETRIES: int = 3
    RECONCILE_BATCH_SIZE: int = 500

    class Config:
        env_file = ".env"
        case_sensitive = True

    def multilang_config(self) -> MultiLangConfig:
        """Build the explicit config object consumed by the services."""
        return MultiLangConfig(
            languages=self.LANGUAGES,
            fallback_language=self.FALLBACK_LANGUAGE,
            auto_generate=self.AUTO_GENERATE,
            observe_during_console=self.OBSERVE_DURING_CONSOLE,
            tables=self.TABLES,
            max_suffix_attempts=self.MAX_SUFFIX_ATTEMPTS,
            conflict_retries=self.CONFLICT_RETRIES,
        )


settings = Settings()
