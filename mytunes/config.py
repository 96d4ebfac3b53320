"""
Runtime configuration, read from environment variables.

Two groups:
- AuthConfig: session signing/cookies, bootstrap admin, login throttling
- DbConfig: where Postgres lives and whether to migrate on startup
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name) or "").strip() or None


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@dataclass(frozen=True)
class AuthConfig:
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    # Bootstrap admin (created on startup / --seed-admin)
    admin_initial_username: str
    admin_initial_password: Optional[str]

    # Failed-login throttling
    login_max_attempts: int
    login_window_seconds: int

    @property
    def sessions_enabled(self) -> bool:
        return bool(self.session_secret)


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    AUTH_SESSION_SECRET must be set for logins to issue a session cookie.
    AUTH_COOKIE_SECURE wins over the scheme of AUTH_PUBLIC_BASE_URL.
    """
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies behind https; plain cookies for local dev.
        cookie_secure = (_env_str("AUTH_PUBLIC_BASE_URL") or "").startswith("https://")

    return AuthConfig(
        session_secret=_env_str("AUTH_SESSION_SECRET"),
        session_ttl_seconds=max(60, _env_int("AUTH_SESSION_TTL_SECONDS", 43200)),  # 12h default
        cookie_secure=cookie_secure,
        admin_initial_username=_env_str("ADMIN_INITIAL_USERNAME") or "admin",
        admin_initial_password=_env_str("ADMIN_INITIAL_PASSWORD"),
        login_max_attempts=max(1, _env_int("AUTH_LOGIN_MAX_ATTEMPTS", 5)),
        login_window_seconds=max(1, _env_int("AUTH_LOGIN_WINDOW_SECONDS", 300)),
    )


@dataclass(frozen=True)
class DbConfig:
    # libpq conninfo / URL, or None when Postgres is not configured
    dsn: Optional[str]
    auto_migrate: bool


def _dsn_from_env() -> Optional[str]:
    dsn = _env_str("POSTGRES_DSN")
    if dsn:
        return dsn
    host = _env_str("POSTGRES_HOST")
    dbname = _env_str("POSTGRES_DB")
    user = _env_str("POSTGRES_USER")
    password = _env_str("POSTGRES_PASSWORD")
    if not (host and dbname and user and password):
        return None
    from psycopg.conninfo import make_conninfo

    # make_conninfo quotes spaces/quotes in the password.
    return make_conninfo(
        host=host,
        port=_env_int("POSTGRES_PORT", 5432),
        dbname=dbname,
        user=user,
        password=password,
    )


def load_db_config() -> DbConfig:
    return DbConfig(dsn=_dsn_from_env(), auto_migrate=_env_bool("DB_AUTO_MIGRATE", False))
