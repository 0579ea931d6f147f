"""
Request gate for page routes.

Decides, from the requested path and the state of the session cookie, whether a page request
is rendered, redirected to the login page, or redirected to the dashboard.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tasktracker.auth.models import Identity
from tasktracker.auth.session import SessionSigner

LOGIN_PATH = "/login"
REGISTER_PATH = "/register"
DASHBOARD_PATH = "/dashboard"


class PathClass(str, Enum):
    PROTECTED = "protected"
    AUTH_ONLY = "auth_only"
    OTHER = "other"


class TokenState(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    ABSENT = "absent"


class GateOutcome(str, Enum):
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_LOGIN_CLEAR_COOKIE = "redirect_login_clear_cookie"
    REDIRECT_DASHBOARD = "redirect_dashboard"

    @property
    def redirect_to(self) -> Optional[str]:
        if self in (GateOutcome.REDIRECT_LOGIN, GateOutcome.REDIRECT_LOGIN_CLEAR_COOKIE):
            return LOGIN_PATH
        if self is GateOutcome.REDIRECT_DASHBOARD:
            return DASHBOARD_PATH
        return None

    @property
    def clears_cookie(self) -> bool:
        return self is GateOutcome.REDIRECT_LOGIN_CLEAR_COOKIE


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    identity: Optional[Identity] = None


def classify_path(path: str) -> PathClass:
    p = path or "/"
    if p == DASHBOARD_PATH or p.startswith(DASHBOARD_PATH + "/"):
        return PathClass.PROTECTED
    if p in (LOGIN_PATH, REGISTER_PATH):
        return PathClass.AUTH_ONLY
    return PathClass.OTHER


def decide(path: str, token_state: TokenState) -> GateOutcome:
    path_class = classify_path(path)
    if path_class is PathClass.PROTECTED:
        if token_state is TokenState.VALID:
            return GateOutcome.ALLOW
        if token_state is TokenState.INVALID:
            # A token that failed verification never becomes valid again.
            return GateOutcome.REDIRECT_LOGIN_CLEAR_COOKIE
        return GateOutcome.REDIRECT_LOGIN
    if path_class is PathClass.AUTH_ONLY:
        if token_state is TokenState.VALID:
            return GateOutcome.REDIRECT_DASHBOARD
        # Invalid cookie is left in place; the next successful login overwrites it.
        return GateOutcome.ALLOW
    return GateOutcome.ALLOW


def evaluate(signer: SessionSigner, path: str, cookie_value: Optional[str]) -> GateDecision:
    """Resolve a page request to a single decision. Only gated paths verify the token."""
    if classify_path(path) is PathClass.OTHER:
        return GateDecision(outcome=GateOutcome.ALLOW)
    if not cookie_value:
        return GateDecision(outcome=decide(path, TokenState.ABSENT))
    identity = signer.verify_token(cookie_value)
    state = TokenState.VALID if identity is not None else TokenState.INVALID
    return GateDecision(outcome=decide(path, state), identity=identity)
