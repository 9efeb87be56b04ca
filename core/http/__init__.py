"""HTTP client utilities and session management."""

from core.http.session import cleanup_session, get_session

__all__ = [
    "cleanup_session",
    "get_session",
]
