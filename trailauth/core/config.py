"""
Runtime configuration.

Every option is read from the environment (after loading a local .env file)
into one immutable Settings object. Components receive the Settings they need
instead of reading os.environ themselves.
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from trailauth.core.errors import ConfigurationError


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Named configuration options for the auth core."""

    model_config = ConfigDict(frozen=True)

    # Storage
    database_url: str = "sqlite+aiosqlite:///./trailauth.db"
    sql_echo: bool = False
    store_timeout_seconds: float = Field(default=5.0, gt=0)

    # Token signing
    jwt_secret_key: Optional[str] = None
    jwt_algorithm: str = "HS256"
    token_issuer: str = "trailauth"
    token_audience: str = "trailauth-mobile"
    access_token_expire_minutes: int = Field(default=15, gt=0)
    refresh_token_expire_days: int = Field(default=7, gt=0)
    refresh_token_rotation: bool = False
    revoke_all_max_attempts: int = Field(default=3, ge=1)

    # Password policy and reset flow
    password_min_length: int = Field(default=8, ge=1)
    reset_code_expire_minutes: int = Field(default=10, gt=0)
    reset_cooldown_minutes: int = Field(default=5, ge=0)
    revoke_sessions_on_password_reset: bool = True

    # Reset code delivery
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: str = "no-reply@trailauth.local"

    # Logging / HTTP
    log_level: str = "INFO"
    log_json: bool = True
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build Settings from the process environment."""
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./trailauth.db"),
            sql_echo=_env_bool("SQL_DEBUG", False),
            store_timeout_seconds=_env_float("STORE_TIMEOUT_SECONDS", 5.0),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY") or None,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            token_issuer=os.getenv("TOKEN_ISSUER", "trailauth"),
            token_audience=os.getenv("TOKEN_AUDIENCE", "trailauth-mobile"),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 15),
            refresh_token_expire_days=_env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7),
            refresh_token_rotation=_env_bool("REFRESH_TOKEN_ROTATION", False),
            revoke_all_max_attempts=_env_int("REVOKE_ALL_MAX_ATTEMPTS", 3),
            password_min_length=_env_int("PASSWORD_MIN_LENGTH", 8),
            reset_code_expire_minutes=_env_int("RESET_CODE_EXPIRE_MINUTES", 10),
            reset_cooldown_minutes=_env_int("RESET_COOLDOWN_MINUTES", 5),
            revoke_sessions_on_password_reset=_env_bool(
                "REVOKE_SESSIONS_ON_PASSWORD_RESET", True
            ),
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=_env_int("SMTP_PORT", 587),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
            mail_from=os.getenv("MAIL_FROM", "no-reply@trailauth.local"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON", True),
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", ["*"]),
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def require_signing_secret(self) -> str:
        """Return the signing secret or fail; tokens are never issued unsigned."""
        if not self.jwt_secret_key:
            raise ConfigurationError(
                "JWT_SECRET_KEY is not set; refusing to issue or verify access tokens"
            )
        return self.jwt_secret_key


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings.from_env()
