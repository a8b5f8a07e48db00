from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Verification code settings
    verification_code_length: int = 6
    verification_ttl_seconds: int = 600
    verification_max_attempts: int = 3
    verification_issue_window_seconds: int = 3600
    verification_issue_max_requests: int = 3

    # Ledger API throttle
    ledger_rate_limit_window_seconds: int = 900
    ledger_rate_limit_max_requests: int = 100

    # Delivery pipeline settings
    delivery_max_attempts: int = 3
    delivery_base_delay_seconds: float = 2.0
    delivery_backoff_multiplier: float = 4.0
    delivery_send_timeout_seconds: float = 30.0
    delivery_stats_window: int = 1000

    # Outbound mail settings
    mailer_backend: Literal["console", "sendgrid"] = "console"
    mail_from_email: str = "noreply@yourdomain.com"
    mail_from_name: str = "Zelle"
    sendgrid_api_key: str = ""
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"

    # Rate limiter storage
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"

    # Comma separated list of operator accounts
    admin_emails: str = ""

    @property
    def admin_email_set(self) -> frozenset[str]:
        return frozenset(e.strip().lower() for e in self.admin_emails.split(",") if e.strip())


settings = Settings()
