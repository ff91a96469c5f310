"""
Session lifecycle against the persistent session store.

Creation and validation fail closed (no session after retries are spent);
invalidation fails open (the local cookie is cleared no matter what the
store says).
"""
import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings
from restay.models import utcnow
from restay.schemas import SessionRecord
from restay.sessions.cookies import ClientSessionStore
from restay.sessions.repository import SessionRepository

logger = logging.getLogger("sessions.service")

T = TypeVar("T")

SESSION_TOKEN_BYTES = 32  # 256 bits

# Returned by _retry when every attempt failed
_FAILED = object()


def generate_session_token() -> str:
    """Random 256-bit token, hex-encoded."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


class SessionService:
    """
    Creates, validates, extends, lists and revokes sessions.

    The store is the source of truth for every session of a user; the client
    store only mirrors the token of the session created on this client.
    """

    def __init__(
        self,
        repository: SessionRepository,
        cookie_store: ClientSessionStore,
        session_duration: timedelta = timedelta(hours=settings.session_duration_hours),
        max_retries: int = settings.session_max_retries,
        backoff_seconds: float = settings.session_retry_backoff_seconds,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._repository = repository
        self._cookies = cookie_store
        self.session_duration = session_duration
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep

    async def _retry(self, operation: Callable[[], T], operation_name: str):
        """
        Run a blocking store operation, retrying with exponential backoff.

        Returns the operation's result, or _FAILED once every attempt failed.
        """
        def log_attempt(retry_state: RetryCallState) -> None:
            logger.error(
                f"SessionService: {operation_name} attempt {retry_state.attempt_number} "
                f"failed: {retry_state.outcome.exception()}"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            # backoff * 2**attempt: 2 s, then 4 s with the default backoff
            wait=wait_exponential(multiplier=2 * self.backoff_seconds),
            retry=retry_if_exception_type(Exception),
            before_sleep=log_attempt,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return await retrying(asyncio.to_thread, operation)
        except Exception as e:
            logger.error(
                f"SessionService: {operation_name} failed after {self.max_retries} attempts: {e}"
            )
            return _FAILED

    async def create_session(
        self,
        user_id: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[SessionRecord]:
        """
        Persist a new active session and mirror its token into the cookie.

        Returns None if the store could not be written after all retries.
        """
        def insert():
            now = self._clock()
            return self._repository.insert(
                user_id=user_id,
                session_token=generate_session_token(),
                expires_at=now + self.session_duration,
                now=now,
                user_agent=user_agent,
                ip_address=ip_address,
            )

        session = await self._retry(insert, "createSession")
        if session is _FAILED:
            return None

        self._cookies.set(session.session_token, session.expires_at)
        logger.info(f"SessionService: Session created successfully: {session.id}")
        return session

    async def validate_session(self) -> Optional[SessionRecord]:
        """
        Check the cookie's session against the store and slide its expiry.

        Returns:
            The refreshed session, or None when there is no cookie, the
            session is invalid, inactive or expired, or the store is down
        """
        token = self._cookies.get()
        if not token:
            logger.debug("SessionService: No session token found in cookies")
            return None

        session = await self._retry(
            lambda: self._repository.find_live_by_token(token, self._clock()),
            "validateSession",
        )
        if session is _FAILED:
            return None

        if session is None:
            logger.info("SessionService: Invalid or expired session, clearing cookie")
            self._cookies.clear()
            return None

        new_expiry = await self.extend_session(session.id)
        if new_expiry is not None:
            session = session.model_copy(update={"expires_at": new_expiry, "updated_at": self._clock()})
        return session

    async def extend_session(self, session_id: str) -> Optional[datetime]:
        """
        Push a session's expiry a full session duration past now.

        Best effort: returns the new expiry, or None if the session could
        not be extended (it is then left as it was).
        """
        now = self._clock()
        new_expires_at = now + self.session_duration

        updated = await self._retry(
            lambda: self._repository.update_expiry(session_id, new_expires_at, now),
            "extendSession",
        )
        if updated is _FAILED:
            return None
        if not updated:
            logger.warning(f"SessionService: Session {session_id} not found, not extended")
            return None

        token = self._cookies.get()
        if token:
            self._cookies.set(token, new_expires_at)
        logger.debug(f"SessionService: Session {session_id} extended")
        return new_expires_at

    async def invalidate_session(self, session_token: Optional[str] = None) -> bool:
        """
        Deactivate a session; the current one if no token is given.

        The cookie is cleared before the store is touched whenever the target
        is this client's session, so a local logout always takes effect.

        Returns:
            True if the store accepted the update
        """
        current = self._cookies.get()
        token = session_token or current

        if session_token is None or session_token == current:
            self._cookies.clear()

        if not token:
            logger.info("SessionService: No session token to invalidate")
            return True

        result = await self._retry(
            lambda: self._repository.deactivate_by_token(token),
            "invalidateSession",
        )
        if result is _FAILED:
            return False

        logger.info("SessionService: Session invalidated")
        return True

    async def invalidate_all_user_sessions(self, user_id: str) -> bool:
        """
        Deactivate every session of a user (logout everywhere).

        Not retried. The local cookie is cleared even if the store fails.
        """
        try:
            count = await asyncio.to_thread(self._repository.deactivate_all_for_user, user_id)
        except Exception as e:
            logger.error(f"Error invalidating all user sessions: {e}")
            return False
        finally:
            self._cookies.clear()

        logger.info(f"All user sessions invalidated ({count})")
        return True

    async def get_user_sessions(self, user_id: str) -> List[SessionRecord]:
        """All live sessions of a user, newest first; [] on any failure."""
        try:
            return await asyncio.to_thread(
                self._repository.list_live_for_user, user_id, self._clock()
            )
        except Exception as e:
            logger.error(f"Error fetching user sessions: {e}")
            return []

    async def cleanup_expired_sessions(self) -> int:
        """Remove expired session rows; returns how many, 0 on failure."""
        try:
            removed = await asyncio.to_thread(self._repository.delete_expired, self._clock())
        except Exception as e:
            logger.error(f"Error cleaning up expired sessions: {e}")
            return 0

        logger.info(f"Expired sessions cleaned up ({removed})")
        return removed

    async def initialize_session(
        self,
        user_id: Optional[str],
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[SessionRecord]:
        """
        Resolve the session for an app start.

        Without an authenticated user the cookie is cleared. Otherwise the
        cookie's session is reused when valid and a new one is created when
        it is not.
        """
        if not user_id:
            logger.info("SessionService: No authenticated user")
            self._cookies.clear()
            return None

        session = await self.validate_session()
        if session is not None and session.user_id != user_id:
            logger.warning("SessionService: Cookie belongs to another user, replacing session")
            await self.invalidate_session()
            session = None

        if session is None:
            logger.info("SessionService: Creating new session for user")
            session = await self.create_session(user_id, user_agent=user_agent, ip_address=ip_address)
        return session
