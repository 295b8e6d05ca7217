# hoa_tracker/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import EmailStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///hoa_tracker/hoa_tracker.db"

    # --- Security / JWT ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours
    bcrypt_rounds: int = 12
    min_password_length: int = 6

    # --- HTTP ---
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"
    onboarding_rate_limit: int = 10
    login_rate_limit: int = 20
    rate_limit_window_seconds: int = 60
    # Only enable behind a proxy that overwrites X-Forwarded-For.
    trust_forwarded_for: bool = False

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "text"  # text | json

    # --- Email ---
    email_backend: str = "local"
    sendgrid_api_key: Optional[str] = None
    email_from_address: Optional[EmailStr] = None
    email_from_name: str = "HOA Violation Tracker"
    email_reply_to: Optional[EmailStr] = None
    email_host: Optional[str] = None
    email_port: Optional[int] = None
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True
    email_output_dir: str = "uploads/emails"

    # --- Photo storage ---
    file_storage_backend: str = "local"
    uploads_dir: str = "uploads"
    uploads_public_prefix: str = "uploads"
    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    # --- Onboarding ---
    trial_period_days: int = 14
    slug_max_attempts: int = 1000
    onboarding_compensate_failures: bool = False

    @property
    def uploads_root_path(self) -> Path:
        return Path(self.uploads_dir)

    @property
    def cors_allow_origins(self) -> List[str]:
        return [origin.rstrip("/") for origin in self.cors_origins]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Ensure path directory exists (for SQLite)
if settings.database_url.startswith("sqlite:///"):
    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

# --- SQLAlchemy setup ---
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
