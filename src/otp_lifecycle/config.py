"""OTP Lifecycle Service — configuration loaded from environment."""

from dataclasses import dataclass
from datetime import timedelta

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./otp_lifecycle.db"

    # ── OTP policy ────────────────────────────────────────
    otp_expiry_seconds: int = 30
    otp_resend_window_minutes: int = 5
    max_resend_count: int = 3
    max_otp_requests_per_hour: int = 3
    otp_uniqueness_window_hours: int = 24

    # ── Email (SMTP) ──────────────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "noreply@otp.local"
    email_from_name: str = "OTP Service"
    skip_email: bool = False

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Lifecycle Service"
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@dataclass(frozen=True)
class OtpPolicy:
    """Time windows and quotas consumed by the lifecycle core."""

    expiry: timedelta = timedelta(seconds=30)
    resend_window: timedelta = timedelta(minutes=5)
    max_resend_count: int = 3
    max_requests_per_hour: int = 3
    uniqueness_window: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, s: Settings) -> "OtpPolicy":
        return cls(
            expiry=timedelta(seconds=s.otp_expiry_seconds),
            resend_window=timedelta(minutes=s.otp_resend_window_minutes),
            max_resend_count=s.max_resend_count,
            max_requests_per_hour=s.max_otp_requests_per_hour,
            uniqueness_window=timedelta(hours=s.otp_uniqueness_window_hours),
        )


# Singleton settings instance
settings = Settings()
