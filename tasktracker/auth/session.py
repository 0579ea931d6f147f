from __future__ import annotations

import json
import time
from typing import Optional

from itsdangerous import BadData, URLSafeTimedSerializer

from tasktracker.auth.config import AuthConfig
from tasktracker.auth.models import Identity

SESSION_COOKIE_NAME = "auth-token"
SESSION_SALT = "tasktracker-session-v1"


class SessionSigner:
    """
    Mints and verifies session tokens.

    The token is an itsdangerous-signed JSON payload {accountId, email, iat, exp}. Nothing is
    stored server-side: validity is fully determined by the signature and the embedded expiry.
    """

    def __init__(self, cfg: AuthConfig):
        if not cfg.session_secret:
            raise ValueError("session_secret is required")
        self._cfg = cfg
        self._serializer = URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)

    def issue_token(self, account_id: int, email: str, *, now: Optional[float] = None) -> str:
        iat = int(now if now is not None else time.time())
        payload = {
            "accountId": int(account_id),
            "email": email,
            "iat": iat,
            "exp": iat + self._cfg.session_ttl_seconds,
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        return self._serializer.dumps(raw)

    def verify_token(self, token: Optional[str], *, now: Optional[float] = None) -> Optional[Identity]:
        """
        Return the identity carried by `token`, or None.

        Bad signature, malformed payload and elapsed expiry are all reported as None.
        """
        if not token:
            return None
        try:
            # max_age bounds the signer's own timestamp; `exp` below is the authoritative expiry.
            raw = self._serializer.loads(token, max_age=self._cfg.session_ttl_seconds)
            data = json.loads(raw)
        except (BadData, ValueError, TypeError):
            return None
        if not isinstance(data, dict):
            return None
        try:
            account_id = int(data["accountId"])
            email = str(data["email"])
            iat = int(data["iat"])
            exp = int(data["exp"])
        except (KeyError, TypeError, ValueError):
            return None
        current = now if now is not None else time.time()
        if current >= exp:
            return None
        return Identity(account_id=account_id, email=email, issued_at=iat, expires_at=exp)

    def read_identity(self, cookie_value: Optional[str]) -> Optional[Identity]:
        """Cookie value in, identity (or None) out."""
        if not cookie_value:
            return None
        return self.verify_token(cookie_value)


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
