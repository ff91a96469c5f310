"""
Client-side session lifecycle with periodic re-validation.

State machine:
    UNINITIALIZED -> VALIDATING -> ACTIVE -> (VALIDATING ...) -> INVALIDATED | EXPIRED
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from config.settings import settings
from restay.schemas import SessionRecord
from restay.sessions.service import SessionService

logger = logging.getLogger("sessions.manager")


class SessionState(Enum):
    """Where this client's current session stands."""
    UNINITIALIZED = "uninitialized"
    VALIDATING = "validating"
    ACTIVE = "active"
    INVALIDATED = "invalidated"  # Logged out here or everywhere
    EXPIRED = "expired"          # Store no longer recognises the session


class SessionManager:
    """
    Tracks the current session and the user's session list for one client.

    While a user is authenticated the current session is re-validated every
    validation_interval, and expired rows are swept every cleanup_interval.
    """

    def __init__(
        self,
        service: SessionService,
        validation_interval: float = settings.session_validation_interval_seconds,
        cleanup_interval: float = settings.session_cleanup_interval_seconds,
    ):
        self.service = service
        self.validation_interval = validation_interval
        self.cleanup_interval = cleanup_interval

        self.user_id: Optional[str] = None
        self.current_session: Optional[SessionRecord] = None
        self.user_sessions: List[SessionRecord] = []
        self.state = SessionState.UNINITIALIZED
        self._tasks: List[asyncio.Task] = []

    @property
    def is_validating(self) -> bool:
        return self.state is SessionState.VALIDATING

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def start(self, user_id: str) -> None:
        """
        Begin managing sessions for an authenticated user.

        Validates the current session, loads the session list and starts
        the periodic validation and cleanup tasks.
        """
        if self.user_id != user_id:
            await self.stop()
        self.user_id = user_id

        await self.validate_current_session()
        await self.load_user_sessions()

        if not self._tasks:
            self._tasks = [
                asyncio.create_task(
                    self._run_periodically(self.validation_interval, self.validate_current_session, "validation")
                ),
                asyncio.create_task(
                    self._run_periodically(self.cleanup_interval, self.service.cleanup_expired_sessions, "cleanup")
                ),
            ]
            logger.info(f"Session manager started for user {user_id}")

    async def stop(self) -> None:
        """Cancel periodic tasks and forget all local session state."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.user_id = None
        self.current_session = None
        self.user_sessions = []
        self.state = SessionState.UNINITIALIZED

    async def _run_periodically(
        self,
        interval: float,
        job: Callable[[], Awaitable[object]],
        name: str,
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception:
                logger.exception(f"Periodic session {name} failed")

    async def validate_current_session(self) -> Optional[SessionRecord]:
        if not self.user_id:
            return None

        previous = self.state
        self.state = SessionState.VALIDATING
        session = await self.service.validate_session()
        self.current_session = session

        if session is not None:
            self.state = SessionState.ACTIVE
        elif previous is SessionState.INVALIDATED:
            self.state = SessionState.INVALIDATED
        else:
            self.state = SessionState.EXPIRED
        return session

    async def load_user_sessions(self) -> List[SessionRecord]:
        if not self.user_id:
            return []
        self.user_sessions = await self.service.get_user_sessions(self.user_id)
        return self.user_sessions

    async def create_session(
        self,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[SessionRecord]:
        """Create a session on login for the managed user."""
        if not self.user_id:
            return None

        session = await self.service.create_session(
            self.user_id, user_agent=user_agent, ip_address=ip_address
        )
        if session is not None:
            self.current_session = session
            self.state = SessionState.ACTIVE
        await self.load_user_sessions()
        return session

    async def invalidate_current_session(self) -> None:
        """Log out on this client."""
        await self.service.invalidate_session()
        self.current_session = None
        self.state = SessionState.INVALIDATED
        await self.load_user_sessions()

    async def invalidate_session(self, session_token: str) -> None:
        """Revoke one session, possibly belonging to another device."""
        await self.service.invalidate_session(session_token)
        if self.current_session is not None and self.current_session.session_token == session_token:
            self.current_session = None
            self.state = SessionState.INVALIDATED
        await self.load_user_sessions()

    async def invalidate_all_sessions(self) -> None:
        """Log out everywhere."""
        if not self.user_id:
            return
        await self.service.invalidate_all_user_sessions(self.user_id)
        self.current_session = None
        self.user_sessions = []
        self.state = SessionState.INVALIDATED
