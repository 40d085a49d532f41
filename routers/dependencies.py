"""
Shared router dependencies.

The session factory lives on app.state so each app (and each test client)
gets its own database.
"""

from fastapi import Request

from database import get_db


def get_session(request: Request):
    """One Session per request; committed on success, rolled back on error."""
    with get_db(request.app.state.session_factory) as db:
        yield db
