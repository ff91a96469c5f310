"""
Client-side storage for the current session token.

The session service only talks to the ClientSessionStore protocol, so the
cookie can be swapped for another mechanism without touching lifecycle logic.
"""
from datetime import datetime, timezone
from email.utils import format_datetime
from http.cookies import SimpleCookie
from typing import Callable, Optional, Protocol
import logging

from fastapi import Request, Response

from config.settings import settings
from restay.models import utcnow

logger = logging.getLogger("sessions.cookies")

COOKIE_PATH = "/"
COOKIE_SAMESITE = "strict"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClientSessionStore(Protocol):
    """
    Interface for holding the one session token mirrored on this client.

    Implementations:
    - CookieJarStore: in-process cookie jar (clients, tests)
    - ResponseCookieStore: FastAPI request/response cookies
    """

    def get(self) -> Optional[str]:
        """Current session token, or None."""
        ...

    def set(self, token: str, expires_at: datetime) -> None:
        """Store the token until expires_at."""
        ...

    def clear(self) -> None:
        """Forget the token."""
        ...


class CookieJarStore:
    """
    In-process cookie jar for a single session cookie.

    Keeps the cookie as a SimpleCookie morsel with path=/, secure and
    samesite=strict, and honours its expiry on read.
    """

    def __init__(
        self,
        cookie_name: str = settings.session_cookie_name,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cookie_name = cookie_name
        self._clock = clock
        self._cookie: SimpleCookie = SimpleCookie()
        self._expires_at: Optional[datetime] = None

    def get(self) -> Optional[str]:
        morsel = self._cookie.get(self.cookie_name)
        if morsel is None or not morsel.value:
            return None
        if self._expires_at is not None and _as_utc(self._expires_at) <= _as_utc(self._clock()):
            # Expired cookies are dropped, as a browser would
            self._cookie.clear()
            self._expires_at = None
            return None
        return morsel.value

    def set(self, token: str, expires_at: datetime) -> None:
        self._write(token, _as_utc(expires_at))
        self._expires_at = expires_at
        logger.debug("Session cookie set")

    def clear(self) -> None:
        self._write("", _EPOCH)
        self._expires_at = None
        logger.debug("Session cookie cleared")

    def _write(self, value: str, expires: datetime) -> None:
        self._cookie = SimpleCookie()
        self._cookie[self.cookie_name] = value
        morsel = self._cookie[self.cookie_name]
        morsel["expires"] = format_datetime(expires, usegmt=True)
        morsel["path"] = COOKIE_PATH
        morsel["secure"] = True
        morsel["samesite"] = "Strict"

    def header(self) -> str:
        """The Set-Cookie header value for the last write ('' if never written)."""
        morsel = self._cookie.get(self.cookie_name)
        return morsel.OutputString() if morsel is not None else ""


class ResponseCookieStore:
    """
    Session cookie bound to one FastAPI request/response pair.

    Reads the incoming cookie and writes Set-Cookie headers on the response.
    Writes made during the request are visible to later reads in it.
    """

    def __init__(
        self,
        request: Request,
        response: Response,
        cookie_name: str = settings.session_cookie_name,
    ):
        self.cookie_name = cookie_name
        self._response = response
        self._token: Optional[str] = request.cookies.get(cookie_name) or None

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str, expires_at: datetime) -> None:
        self._token = token
        self._response.set_cookie(
            self.cookie_name,
            token,
            expires=_as_utc(expires_at),
            path=COOKIE_PATH,
            secure=True,
            httponly=True,
            samesite=COOKIE_SAMESITE,
        )

    def clear(self) -> None:
        self._token = None
        self._response.delete_cookie(
            self.cookie_name,
            path=COOKIE_PATH,
            secure=True,
            httponly=True,
            samesite=COOKIE_SAMESITE,
        )
