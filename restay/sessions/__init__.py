"""
Session lifecycle: persistence, client cookie mirroring and periodic validation.
"""
from .cookies import ClientSessionStore, CookieJarStore, ResponseCookieStore
from .repository import SessionRepository
from .service import SessionService, generate_session_token
from .manager import SessionManager, SessionState

__all__ = [
    # Client token storage
    "ClientSessionStore",
    "CookieJarStore",
    "ResponseCookieStore",
    # Persistence
    "SessionRepository",
    # Lifecycle
    "SessionService",
    "generate_session_token",
    "SessionManager",
    "SessionState",
]
