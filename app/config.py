from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # ── Record store ──────────────────────────────────────────
    # "supabase" talks to PostgREST; "sql" uses SQLAlchemy against database_url
    store_backend: str = "supabase"
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None
    database_url: str = "sqlite:///./social_core.db"

    # ── JWT ───────────────────────────────────────────────────
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 7

    # ── Accounts / OTP ────────────────────────────────────────
    otp_expire_minutes: int = 5
    default_role_name: str = "User"
    oauth_provider: str = "google"
    # When false a follow request is refused if an active edge exists in
    # either direction between the two accounts.
    allow_follow_back: bool = False

    # ── SMTP ──────────────────────────────────────────────────
    mail_enabled: bool = False
    mail_username: str = ""
    mail_password: str = ""
    mail_from: str = "noreply@example.com"
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    notification_queue_size: int = 100

    # ── App ───────────────────────────────────────────────────
    app_name: str = "social-core"
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000"
    rate_limit_enabled: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        """Split comma-separated origins into a list, stripping whitespace."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings loader, reads .env once.
    """
    return Settings()


settings = get_settings()
