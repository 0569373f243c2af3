from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "talentscore"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/talentscore.db"
    data_dir: Path = Path("./data")

    scoring_api_base: str = "https://uscis-scoring-tool-paid-production.up.railway.app/api/v1"
    scoring_api_key: str = ""
    scoring_timeout_sec: int = 30
    evaluation_type: str = "O-1A"
    bundle_type: str = "full_petition"

    cron_secret: str = ""

    # Sized so one invocation fits a 60s serverless budget.
    new_scoring_batch: int = 3
    pending_check_batch: int = 20
    stale_after_hours: int = 24

    poll_delay_sec: float = 0.3
    upload_delay_sec: float = 0.2
    subject_delay_sec: float = 0.5

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("scoring_api_base", "scoring_api_key", "cron_secret")
    @classmethod
    def strip_whitespace(cls, value: str) -> str:
        return value.strip()

    @field_validator("new_scoring_batch", "pending_check_batch", "stale_after_hours")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch sizes and staleness window must be at least 1")
        return value

    @field_validator("poll_delay_sec", "upload_delay_sec", "subject_delay_sec")
    @classmethod
    def validate_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("delays must not be negative")
        return value

    @property
    def scoring_api_url(self) -> str:
        return self.scoring_api_base.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
