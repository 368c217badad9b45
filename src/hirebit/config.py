from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Hirebit"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8080
    log_level: str = "INFO"
    cors_origins: str = "http://127.0.0.1:3000"

    database_url: str = "sqlite:///./data/hirebit.db"
    data_dir: Path = Path("./data")
    storage_dir: Path = Path("./data/storage")
    storage_public_url: str = ""

    imap_host: str = ""
    imap_port: int = 993
    imap_user: str = ""
    imap_password: str = ""
    imap_tls: bool = True
    imap_folder: str = "INBOX"
    imap_poll_interval_sec: int = 60
    imap_max_messages_per_poll: int = 50

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = True
    smtp_use_ssl: bool = False
    smtp_timeout_sec: int = 30
    mail_from: str = "no-reply@hirebit.local"
    mail_from_name: str = "Hirebit"
    default_hr_email: str = "hr@hirebit.local"

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_scoring: str = "gpt-4o"
    openai_model_report: str = "gpt-4o-mini"
    openai_timeout_sec: int = 60

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 90

    llm_scoring_provider: str = "openai"

    shortlist_threshold: int = 80
    flag_threshold: int = 50
    scoring_cv_char_limit: int = 12000

    deadline_sweep_interval_sec: int = 300
    report_sweep_interval_sec: int = 600
    pending_scoring_interval_sec: int = 900
    schedule_batch_size: int = 100
    report_batch_size: int = 10
    report_workers: int = 2
    report_retry_backoff_sec: int = 900
    pending_scoring_batch_size: int = 100

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("llm_scoring_provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        if value not in {"openai", "local"}:
            raise ValueError("llm_scoring_provider must be 'openai' or 'local'")
        return value

    @field_validator("report_workers")
    @classmethod
    def validate_workers(cls, value: int) -> int:
        if value < 1 or value > 4:
            raise ValueError("report_workers must be between 1 and 4")
        return value

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        if not 0 <= self.flag_threshold <= self.shortlist_threshold <= 100:
            raise ValueError("thresholds must satisfy 0 <= flag_threshold <= shortlist_threshold <= 100")
        return self

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def mailbox_configured(self) -> bool:
        return bool(self.imap_host and self.imap_user and self.imap_password)

    @property
    def missing_mailbox_settings(self) -> list[str]:
        required = {
            "IMAP_HOST": self.imap_host,
            "IMAP_USER": self.imap_user,
            "IMAP_PASSWORD": self.imap_password,
        }
        return [name for name, value in required.items() if not value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
