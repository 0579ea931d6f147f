"""Credential store: accounts and owner-scoped task records in PostgreSQL.

Postgres drivers are imported lazily inside functions so the auth layer and its tests can run
without DB access.
"""

from __future__ import annotations
