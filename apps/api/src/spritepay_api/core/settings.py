from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./spritepay.db"
    redis_url: str = "redis://localhost:6379/0"
    secret_key: str = "change-me"

    # Application URLs
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Internal API security
    operator_api_key: str = ""

    # Starting credit eligibility
    eligibility_risk_threshold: int = 50
    eligibility_starting_credits: int = 4
    eligibility_admin_emails: list[str] = Field(default_factory=lambda: ["admin@imperium.com"])

    @field_validator("eligibility_admin_emails", mode="before")
    @classmethod
    def _parse_email_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []

    # Local claim tracker heuristics
    claim_tracker_min_age_seconds: int = 60
    claim_tracker_min_device_id_length: int = 8

    # Device fingerprints
    fingerprint_length: int = 24
    fingerprint_fallback_length: int = 8

    # Withdrawal guard
    withdrawal_rate_limit_backend: Literal["memory", "redis"] = "memory"
    withdrawal_rate_limit_window_seconds: int = 60
    withdrawal_rate_limit_max_requests: int = 3
    withdrawal_min_amount: int = 1
    withdrawal_max_amount: int = 10000

    # Referral program
    referral_code_length: int = 8
    referral_query_param: str = "ref"
    referral_signup_path: str = "/signup"
    referral_milestone_reward_credits: int = 2

    # Payment confirmation polling
    payment_poll_interval_seconds: float = 5.0
    payment_poll_max_attempts: int = 360


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
