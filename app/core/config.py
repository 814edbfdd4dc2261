"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional, Union
import os

from app.core.constants import (
    ACCESS_TOKEN_EXPIRE_MINUTES as DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES,
    DEFAULT_MESSAGE_TEMPLATE,
    DEFAULT_TIMESTAMP_TOLERANCE_MS,
    DEFAULT_WINDOW_MS,
    MAX_WINDOW_MS,
    MIN_SECRET_LENGTH,
    MIN_WINDOW_MS,
)

# Secrets that must never serve production traffic
KNOWN_DEFAULT_SECRETS = frozenset({
    "default-secret-key",
    "default-secret-key-change-in-production",
})


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Database
    DATABASE_URL: str = "sqlite:///./data/checkin.db"
    DB_CONNECT_RETRIES: int = 3  # Bounded connection attempts before failing
    DB_RETRY_DELAY_SECONDS: float = 1.0  # Fixed backoff between attempts

    # OTP
    OTP_SECRET: Optional[str] = None  # Seed for bootstrap; generated when absent
    OTP_WINDOW_MS: int = DEFAULT_WINDOW_MS
    AUTO_BOOTSTRAP: bool = True  # Create the secret row on startup if missing
    TIMESTAMP_TOLERANCE_MS: int = DEFAULT_TIMESTAMP_TOLERANCE_MS

    # Delivery rendering
    TARGET_PHONE_NUMBER: str = "+15550100000"
    MESSAGE_TEMPLATE: str = DEFAULT_MESSAGE_TEMPLATE
    QR_SIZE: int = 200
    QR_IMAGE_FORMAT: str = "svg"  # svg or png

    # Retention
    RETENTION_DAYS: int = 90

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ADMIN_PASSWORD: str = "adminpass"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES

    # CORS - Can be a list or comma-separated string
    CORS_ORIGINS: Union[list, str] = ["*"]  # In production, specify your domain

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('OTP_WINDOW_MS')
    @classmethod
    def check_window(cls, v: int) -> int:
        """Reject windows outside the supported 30s-5min range."""
        if v < MIN_WINDOW_MS or v > MAX_WINDOW_MS:
            raise ValueError(
                f"OTP_WINDOW_MS must be between {MIN_WINDOW_MS} and {MAX_WINDOW_MS}"
            )
        return v

    @field_validator('QR_IMAGE_FORMAT')
    @classmethod
    def check_image_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("svg", "png"):
            raise ValueError("QR_IMAGE_FORMAT must be 'svg' or 'png'")
        return v

    # Application
    APP_TITLE: str = "Check-in OTP Service"
    APP_DESCRIPTION: str = "Time-windowed one-time codes for attendance check-in"
    APP_VERSION: str = "1.0.0"

    # Environment
    ENVIRONMENT: str = "development"  # development, staging, production

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL

    def get_database_url(self) -> str:
        """
        Get the database URL.

        Heroku-style ``postgres://`` URLs are rewritten to the scheme
        SQLAlchemy expects.
        """
        url = self.DATABASE_URL
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql://", 1)
        return url

    def validate_production_config(self) -> None:
        """Validate that production-critical settings are properly configured."""
        if self.ENVIRONMENT == "production":
            issues = []
            warnings = []

            if self.SECRET_KEY == "your-secret-key-change-in-production":
                issues.append("SECRET_KEY must be changed from default value")

            if self.ADMIN_PASSWORD == "adminpass":
                issues.append("ADMIN_PASSWORD must be changed from default value")

            # Warn if password is not hashed (starts with $argon2)
            if not self.ADMIN_PASSWORD.startswith("$argon2"):
                warnings.append(
                    "ADMIN_PASSWORD is not hashed. For better security, use:\n"
                    "    python -c \"from app.core.security import get_password_hash; "
                    "print(get_password_hash('your-password'))\""
                )

            if self.OTP_SECRET is not None and (
                self.OTP_SECRET in KNOWN_DEFAULT_SECRETS
                or len(self.OTP_SECRET) < MIN_SECRET_LENGTH
            ):
                issues.append(
                    f"OTP_SECRET must be at least {MIN_SECRET_LENGTH} characters "
                    "and not a default value"
                )

            if self.CORS_ORIGINS == ["*"]:
                issues.append("CORS_ORIGINS should be restricted to specific domains")

            if warnings:
                print("⚠️  Production configuration warnings:")
                for warning in warnings:
                    print(f"  - {warning}")

            if issues:
                raise ValueError(
                    "Production configuration errors:\n" +
                    "\n".join(f"  - {issue}" for issue in issues)
                )


settings = Settings()

# Validate production configuration on startup
if os.getenv("ENVIRONMENT") == "production":
    settings.validate_production_config()
