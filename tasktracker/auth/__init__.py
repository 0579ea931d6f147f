"""
Authentication helpers for the task tracker.

Design goals:
- One signing secret, one token type.
- Cookie-based session (HttpOnly) for the same-origin UI and API.
- Every failure mode of a session token collapses to "not authenticated".
"""
