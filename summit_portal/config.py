# summit_portal/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import EmailStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # --- Database ---
    database_url: str = "sqlite:///summit_portal/summit_dev.db"

    # --- Security / JWT ---
    jwt_secret: str = "dev-secret-please-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # --- CORS / links ---
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    frontend_url: str = "http://localhost:3000"
    content_security_policy: Optional[str] = (
        "default-src 'self'; img-src 'self' data: blob:; style-src 'self' 'unsafe-inline'"
    )

    # --- Email ---
    email_backend: str = "local"
    sendgrid_api_key: Optional[str] = None
    email_from_address: Optional[EmailStr] = "TheSummitRidgeHOA@proton.me"
    email_from_name: str = "Summit Ridge HOA"
    email_reply_to: Optional[EmailStr] = None
    email_host: Optional[str] = None
    email_port: int = 587
    email_host_user: Optional[str] = None
    email_host_password: Optional[str] = None
    email_use_tls: bool = True
    email_output_dir: str = "uploads/emails"

    # --- Document Generation ---
    pdf_output_dir: str = "uploads/pdfs"

    # --- Logging ---
    log_level: str = "INFO"
    log_json: bool = False

    # --- Scheduling ---
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_timezone: str = "America/Denver"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def enable_sqlite_savepoints(target: Engine) -> Engine:
    """Let SQLAlchemy own BEGIN so SAVEPOINT works on pysqlite."""

    @event.listens_for(target, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return target


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
if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
