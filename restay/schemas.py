"""
Pydantic schemas for session records and API request/response models
"""
from pydantic import BaseModel
from typing import Any, Dict, Optional
from datetime import datetime


# ===== SESSION SCHEMAS =====

class SessionRecord(BaseModel):
    """A persisted session as seen by callers of the session service"""
    id: str
    user_id: str
    session_token: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class CreateSessionRequest(BaseModel):
    """Body for creating a session on login"""
    user_id: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class InvalidationResult(BaseModel):
    """Outcome of a logout request"""
    success: bool


class CleanupResult(BaseModel):
    """Outcome of an expired-session sweep"""
    removed: int


# ===== GOVERNOR SCHEMAS =====

class FetchRequest(BaseModel):
    """Outbound call to run through the request governor"""
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    body: Optional[Any] = None
    priority: int = 0


class ClearResult(BaseModel):
    """Number of cache entries or queued requests removed"""
    cleared: int
