from pydantic import BaseModel, Field
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


_ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(_ROOT_DIR / ".env")
load_dotenv()  # fallback to current working directory


DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8080",
    "http://127.0.0.1:5173",
)


def _normalize_env(value: Optional[str], default: str) -> str:
    if value is None:
        return default
    cleaned = value.strip().lower()
    return cleaned or default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_list(name: str, default: tuple) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class EmailSettings(BaseModel):
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    from_address: str = ""
    from_name: str = "Organizador Académico"
    use_tls: bool = False
    start_tls: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user)


def _load_email_settings() -> EmailSettings:
    user = os.getenv("EMAIL_USER", "")
    return EmailSettings(
        host=os.getenv("EMAIL_HOST", ""),
        port=_env_int("EMAIL_PORT", 587),
        user=user,
        password=os.getenv("EMAIL_PASS", ""),
        from_address=os.getenv("EMAIL_FROM") or user,
        from_name=os.getenv("EMAIL_FROM_NAME", "Organizador Académico"),
        use_tls=_env_bool("EMAIL_USE_TLS", False),
        start_tls=_env_bool("EMAIL_START_TLS", True),
    )


class RabbitMQSettings(BaseModel):
    enabled: bool = False
    url: str = "amqp://localhost"


def _load_rabbitmq_settings() -> RabbitMQSettings:
    return RabbitMQSettings(
        enabled=_env_bool("RABBITMQ_ENABLED", False),
        url=os.getenv("RABBITMQ_URL", "amqp://localhost"),
    )


class Settings(BaseModel):
    app_name: str = "Organizador Académico"
    secret_key: str = os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or "dev-secret-key-change"
    access_token_expire_minutes: int = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)
    algorithm: str = os.getenv("ALGORITHM", "HS256")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./organizador.db")
    debug: bool = _env_bool("DEBUG", False)
    environment: str = _normalize_env(os.getenv("APP_ENV") or os.getenv("ENVIRONMENT"), "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    cors_origins: List[str] = Field(default_factory=lambda: _env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS))
    rate_limit_enabled: bool = _env_bool("RATE_LIMIT_ENABLED", True)
    rate_limit_max_requests: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 100)
    rate_limit_window_seconds: int = _env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)
    rabbitmq: RabbitMQSettings = Field(default_factory=_load_rabbitmq_settings)
    email: EmailSettings = Field(default_factory=_load_email_settings)

    @property
    def is_production(self) -> bool:
        return self.environment in {"prod", "production"}


settings = Settings()
