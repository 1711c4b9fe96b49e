"""Configuration management for cellpad."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Environment variables are prefixed with CELLPAD_
    Example: CELLPAD_INTERPRETERS='{"python": ["/usr/bin/python3", "-u"]}'

    Attributes:
        interpreters: Language name -> argv prefix used to run a staged cell
        default_language: Language used when the notebook metadata has none
        execution_timeout: Seconds before a cell run is killed (unset = wait forever)
        temp_dir: Directory for staged cell files (unset = system default)
        log_level: Logging level name
    """

    interpreters: dict[str, list[str]] = Field(
        default_factory=lambda: {"python": ["python3"]},
        description="Interpreter command per notebook language",
    )
    default_language: str = Field(
        default="python",
        description="Language assumed when notebook metadata declares none",
    )
    execution_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds before a running cell is killed",
    )
    temp_dir: Optional[str] = Field(
        default=None,
        description="Directory for staged cell programs",
    )
    log_level: str = Field(
        default="WARNING",
        description="Logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="CELLPAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def interpreter_for(self, language: Optional[str]) -> Optional[list[str]]:
        """Return the argv prefix for a language, or None when unconfigured."""
        language = (language or self.default_language).lower()
        command = self.interpreters.get(language)
        return list(command) if command else None


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
