import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    debug_sql: bool

    session_lifetime_hours: int
    password_hash_method: str
    log_level: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getflag(name: str) -> bool:
    return _getenv(name).lower() in ("1", "true", "yes")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///cms.db"),
        debug_sql=_getflag("DEBUG_SQL"),
        session_lifetime_hours=int(_getenv("SESSION_LIFETIME_HOURS", "8")),
        password_hash_method=_getenv("PASSWORD_HASH_METHOD", "pbkdf2:sha256:600000"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "DEBUG_SQL": s.debug_sql,
        "SESSION_LIFETIME_HOURS": s.session_lifetime_hours,
        "PASSWORD_HASH_METHOD": s.password_hash_method,
        "LOG_LEVEL": s.log_level,
        # session cookie
        "SESSION_COOKIE_NAME": "cms_session",
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        "SESSION_REFRESH_EACH_REQUEST": True,
    }
