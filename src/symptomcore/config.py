from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "SymptomCore"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Reference library: a csv/tsv/json path or a SQLAlchemy URL
    LIBRARY_SOURCE: str = "data/symptom_master.csv"
    LIBRARY_TABLE: str = "symptom_master"

    NEGATION_WINDOW: int = 5
    MIN_PHRASE_CHARS: int = 3

    BATCH_SIZE: int = 500
    MAX_WORKERS: int = 4
    PIVOT_MAX_ROWS: int = 400

    REPORTS_DIR: str = "reports/algorithm_comparison"

    @field_validator("NEGATION_WINDOW")
    @classmethod
    def validate_negation_window(cls, v: int) -> int:
        if not 1 <= v <= 20:
            raise ValueError("NEGATION_WINDOW must be between 1 and 20 tokens.")
        return v

    @field_validator("BATCH_SIZE", "MAX_WORKERS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("BATCH_SIZE and MAX_WORKERS must be >= 1.")
        return v

    @field_validator("PIVOT_MAX_ROWS", "MIN_PHRASE_CHARS")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0.")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in {"production", "prod"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
