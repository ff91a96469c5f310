"""
Session persistence: create, read, update and sweep session rows
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from restay.models import UserSession
from restay.schemas import SessionRecord


class SessionRepository:
    """
    Session CRUD over a SQLAlchemy session factory

    Each call opens its own database session and commits before returning,
    so callers only ever see detached SessionRecord snapshots.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def insert(
        self,
        user_id: str,
        session_token: str,
        expires_at: datetime,
        now: datetime,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> SessionRecord:
        """
        Create a new active session row
        """
        with self._session_factory() as db:
            row = UserSession(
                user_id=user_id,
                session_token=session_token,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
                user_agent=user_agent,
                ip_address=ip_address,
                is_active=True,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return SessionRecord.model_validate(row)

    def find_live_by_token(self, session_token: str, now: datetime) -> Optional[SessionRecord]:
        """
        Get the active, unexpired session holding this token
        """
        with self._session_factory() as db:
            row = (
                db.query(UserSession)
                .filter(
                    UserSession.session_token == session_token,
                    UserSession.is_active.is_(True),
                    UserSession.expires_at > now,
                )
                .first()
            )
            return SessionRecord.model_validate(row) if row else None

    def update_expiry(self, session_id: str, expires_at: datetime, now: datetime) -> bool:
        """
        Move a session's expiry; returns False if no such session exists
        """
        with self._session_factory() as db:
            updated = (
                db.query(UserSession)
                .filter(UserSession.id == session_id)
                .update(
                    {UserSession.expires_at: expires_at, UserSession.updated_at: now},
                    synchronize_session=False,
                )
            )
            db.commit()
            return updated > 0

    def deactivate_by_token(self, session_token: str) -> int:
        """
        Flip is_active off for the session holding this token
        """
        with self._session_factory() as db:
            updated = (
                db.query(UserSession)
                .filter(UserSession.session_token == session_token)
                .update({UserSession.is_active: False}, synchronize_session=False)
            )
            db.commit()
            return updated

    def deactivate_all_for_user(self, user_id: str) -> int:
        """
        Flip is_active off for every session of a user (all devices)
        """
        with self._session_factory() as db:
            updated = (
                db.query(UserSession)
                .filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
                .update({UserSession.is_active: False}, synchronize_session=False)
            )
            db.commit()
            return updated

    def list_live_for_user(self, user_id: str, now: datetime) -> List[SessionRecord]:
        """
        Get a user's active, unexpired sessions, most recent first
        """
        with self._session_factory() as db:
            rows = (
                db.query(UserSession)
                .filter(
                    UserSession.user_id == user_id,
                    UserSession.is_active.is_(True),
                    UserSession.expires_at > now,
                )
                .order_by(UserSession.created_at.desc())
                .all()
            )
            return [SessionRecord.model_validate(row) for row in rows]

    def delete_expired(self, now: datetime) -> int:
        """
        Physically remove every session whose expiry has passed
        """
        with self._session_factory() as db:
            deleted = (
                db.query(UserSession)
                .filter(UserSession.expires_at <= now)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted
