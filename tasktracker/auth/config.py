from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

SESSION_TTL_SECONDS = 7 * 24 * 60 * 60
PASSWORD_MIN_LENGTH = 6


class AuthConfigError(RuntimeError):
    """Raised when the process cannot start because auth configuration is incomplete."""


@dataclass(frozen=True)
class AuthConfig:
    # Required for session signing
    session_secret: str
    session_ttl_seconds: int = SESSION_TTL_SECONDS
    cookie_secure: bool = False

    # bcrypt work factor (4..31)
    bcrypt_rounds: int = 12
    password_min_length: int = PASSWORD_MIN_LENGTH


def _parse_bool(value: str) -> bool | None:
    v = (value or "").strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    return None


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    AUTH_SESSION_SECRET is mandatory; its absence is a startup error, not a per-request one.
    """
    secret = (os.getenv("AUTH_SESSION_SECRET", "") or "").strip()
    if not secret:
        raise AuthConfigError("AUTH_SESSION_SECRET is required")

    cookie_secure = _parse_bool(os.getenv("AUTH_COOKIE_SECURE", ""))
    if cookie_secure is None:
        # Default: secure cookies in production; allow plain HTTP for local dev.
        cookie_secure = (os.getenv("APP_ENV", "") or "").strip().lower() == "production"

    try:
        rounds = int((os.getenv("AUTH_BCRYPT_ROUNDS", "") or "12").strip())
    except ValueError:
        rounds = 12
    rounds = min(max(rounds, 4), 31)

    return AuthConfig(
        session_secret=secret,
        session_ttl_seconds=SESSION_TTL_SECONDS,
        cookie_secure=cookie_secure,
        bcrypt_rounds=rounds,
        password_min_length=PASSWORD_MIN_LENGTH,
    )
