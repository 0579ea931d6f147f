from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from tasktracker.auth.models import Identity
from tasktracker.auth.session import SESSION_COOKIE_NAME, SessionSigner


def get_signer(request: Request) -> SessionSigner:
    return request.app.state.signer


def authenticate_request(request: Request) -> Optional[Identity]:
    """
    Authenticate a request and return its Identity if the session cookie is present/valid.

    API routes call this themselves; they do not rely on the page gate having run.
    """
    return get_signer(request).read_identity(request.cookies.get(SESSION_COOKIE_NAME))


def require_identity(request: Request) -> Identity:
    """FastAPI dependency: resolved identity, or 401."""
    identity = authenticate_request(request)
    if identity is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return identity
