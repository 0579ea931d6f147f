from __future__ import annotations

import base64
import hashlib
import logging
from typing import Optional

import bcrypt

from tasktracker.auth.models import Account

logger = logging.getLogger(__name__)


def _bcrypt_input(password: str) -> bytes:
    # bcrypt reads at most 72 bytes (and newer releases reject longer input), so every password is
    # first reduced to a fixed 44-byte base64 SHA-256 digest. Base64 keeps NUL bytes out.
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password with bcrypt.

    Args:
        password: Plain text password, any length
        rounds: bcrypt cost factor

    Returns:
        Bcrypt hash string (salt embedded, differs on every call)
    """
    return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash with constant-time comparison.

    Args:
        password: Plain text password
        password_hash: Bcrypt hash produced by hash_password

    Returns:
        True if password matches, False otherwise (including malformed hashes)
    """
    try:
        return bcrypt.checkpw(_bcrypt_input(password), password_hash.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate(store, email: str, password: str) -> Optional[Account]:
    """
    Authenticate an account with email/password.

    Returns the Account on success, None for unknown email or wrong password.
    The two failures are not distinguished to the caller.
    """
    account = store.get_account_by_email(normalize_email(email))
    if account is None:
        return None
    if not verify_password(password, account.password_hash):
        logger.info("Failed login for account id=%s", account.id)
        return None
    return account
