"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database settings
    db_host: str = "localhost"
    db_port: str = "5432"
    db_user: str = "user"
    db_password: str = "password"
    db_name: str = "toeic"
    db_url: Optional[str] = None  # Full async URL override, e.g. sqlite+aiosqlite:///./dev.db

    # JWT settings
    jwt_secret_key: str = "change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24

    # AI settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    ai_max_retries: int = 3
    ai_timeout_seconds: float = 120.0

    # Trial settings
    trial_duration_days: int = 3
    trial_daily_ai_chat_limit: int = 20
    trial_ip_window_days: int = 7
    trial_ip_max_starts: int = 3

    # Quota settings
    quota_timezone: str = "UTC"  # Day boundaries for daily_* counters
    upgrade_url: str = "/pricing"

    # Default admin user
    default_admin_username: Optional[str] = None
    default_admin_email: Optional[str] = None
    default_admin_password: Optional[str] = None
    force_reset_password_admin: bool = False
    seed_default_plans: bool = True

    # Application settings
    app_name: str = "TOEIC Prep Backend API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_directory: str = "logs"
    enable_file_logging: bool = True
    log_compression: bool = True
    log_file_max_size_mb: int = 10
    log_file_backup_count: int = 5
    app_log_file: str = "app.log"
    error_log_file: str = "error.log"
    security_log_file: str = "security.log"
    billing_log_file: str = "billing.log"
    ai_log_file: str = "ai.log"
    database_log_file: str = "database.log"
    access_log_file: str = "access.log"
    enable_request_logging: bool = True
    enable_sql_logging: bool = False

    # Security settings
    enable_security_headers: bool = True
    enable_rate_limiting: bool = True
    request_timeout_seconds: int = 300  # 5 minutes

    @property
    def async_database_url(self) -> str:
        """Async driver URL used by the application engine."""
        if self.db_url:
            return self.db_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
