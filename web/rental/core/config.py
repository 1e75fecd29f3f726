import os
from typing import Optional, List
from functools import lru_cache


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings following Single Responsibility Principle"""

    def __init__(self):
        # Database
        self.DB_DSN: str = os.getenv("DB_DSN", "")
        self.DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
        self.DB_ECHO: bool = _env_bool("DB_ECHO")

        # Security
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "")
        self.ALGORITHM: str = "HS256"
        self.ACCESS_TOKEN_EXPIRE_SECONDS: int = int(os.getenv("JWT_ACCESS_TTL", "900"))  # 15 minutes

        # Cron triggers fall back to the auth secret, like the platform scheduler does
        self.CRON_SECRET: Optional[str] = os.getenv("CRON_SECRET") or os.getenv("AUTH_SECRET") or None

        # CORS
        self.CORS_ALLOW_ORIGINS: List[str] = []
        self.CORS_ALLOW_CREDENTIALS: bool = True

        # Rate Limiting
        self.RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")

        # Mail
        self.MAIL_ENABLED: bool = _env_bool("MAIL_ENABLED")
        self.SMTP_HOST: str = os.getenv("SMTP_HOST", "")
        self.SMTP_PORT: int = int(os.getenv("SMTP_PORT", "465"))
        self.SMTP_TLS: bool = _env_bool("SMTP_TLS", "true")
        self.CONTACT_EMAIL: str = os.getenv("CONTACT_EMAIL", "")
        self.SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "") or self.CONTACT_EMAIL
        self.EMAIL_PASSWORD: str = os.getenv("EMAIL_PASSWORD", "")
        self.MAIL_TIMEOUT_SECONDS: float = float(os.getenv("MAIL_TIMEOUT_SECONDS", "10"))
        self.SENDER_LABEL: str = os.getenv("SENDER_LABEL", "GRH Rental Services")

        # Business Rules
        self.BLOCK_ON_PENDING: bool = _env_bool("BLOCK_ON_PENDING")
        self.NOTES_MAX_LENGTH: int = int(os.getenv("NOTES_MAX_LENGTH", "1000"))
        self.BLOCK_REASON_MAX_LENGTH: int = int(os.getenv("BLOCK_REASON_MAX_LENGTH", "500"))
        self.USER_MAX_RANGE_DAYS: int = int(os.getenv("USER_MAX_RANGE_DAYS", "1"))
        self.TEAM_MAX_RANGE_DAYS: int = int(os.getenv("TEAM_MAX_RANGE_DAYS", "13"))
        self.MAX_BLOCK_OCCURRENCES: int = 52

        # Reconciliation windows
        self.AUTO_BORROW_LEAD_MINUTES: int = int(os.getenv("AUTO_BORROW_LEAD_MINUTES", "15"))
        self.STALE_BORROW_DAYS: int = int(os.getenv("STALE_BORROW_DAYS", "14"))
        self.BOOKING_RETENTION_DAYS: int = int(os.getenv("BOOKING_RETENTION_DAYS", "180"))
        self.INACTIVE_USER_DAYS: int = int(os.getenv("INACTIVE_USER_DAYS", "365"))

        self._validate()
        self._parse_cors_origins()

    def _validate(self):
        """Validate required settings"""
        if not self.DB_DSN:
            raise ValueError("DB_DSN environment variable must be set")

    def _parse_cors_origins(self):
        """Parse CORS origins from environment"""
        raw_origins = os.getenv("CORS_ALLOW_ORIGINS", "*")

        if raw_origins.strip() == "*":
            self.CORS_ALLOW_ORIGINS = ["*"]
            self.CORS_ALLOW_CREDENTIALS = False  # Security: wildcard forbids credentials
        else:
            self.CORS_ALLOW_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]
            self.CORS_ALLOW_CREDENTIALS = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
