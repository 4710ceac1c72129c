# app/core/config.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    # Server
    FRONTEND_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./concreexpo.db"

    # JWT (access tokens are issued elsewhere; widget tokens are signed here)
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # SMS (MSG91)
    SMS_PROVIDER_NAME: str = "msg91"
    MSG91_BASE_URL: str = "https://control.msg91.com/api/v5"
    MSG91_WIDGET_VERIFY_URL: str = "https://control.msg91.com/api/v5/widget/verifyAccessToken"
    MSG91_AUTH_KEY: Optional[str] = None
    MSG91_SENDER_ID: str = "CNCEXP"
    MSG91_ROUTE: str = "4"  # 4 = transactional
    MSG91_TEMPLATE_ID: Optional[str] = None
    MSG91_OTP_TEMPLATE_ID: Optional[str] = None
    SMS_TIMEOUT_SECONDS: int = 10
    NATIONAL_DIALING_PREFIX: str = "91"

    # Admin / business
    ADMIN_PHONE: Optional[str] = None
    COMPANY_NAME: str = "Concreexpo"

    # OTP
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 15
    WORKER_VISIT_OTP_EXPIRY_HOURS: int = 24
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    OTP_MAX_ATTEMPTS: int = 3
    OTP_TEST_BYPASS_CODE: str = "000000"  # empty string disables the bypass
    WIDGET_TOKEN_TTL_SECONDS: int = 15 * 60
    WORKER_VISIT_WIDGET_TOKEN_TTL_SECONDS: int = 24 * 60 * 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
