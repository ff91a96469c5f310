"""
Restay API - Main FastAPI Application
Request governor monitoring and session lifecycle endpoints
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response

from restay.db import SessionLocal, init_db
from restay.exceptions import QuotaExceededError, RequestCancelledError, TransportError
from restay.governor import RequestGovernor, get_governor
from restay.schemas import (
    CleanupResult, ClearResult, CreateSessionRequest, FetchRequest,
    InvalidationResult, SessionRecord,
)
from restay.sessions import ResponseCookieStore, SessionRepository, SessionService

logging.basicConfig(level=logging.INFO)

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "Restay"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    get_governor().transport.close()


app = FastAPI(
    title=APP_NAME,
    description="Request governor and session lifecycle for the Restay dashboard",
    version=APP_VERSION,
    lifespan=lifespan,
)


def get_session_repository() -> SessionRepository:
    """Session repository over the application database."""
    return SessionRepository(SessionLocal)


def get_session_service(
    request: Request,
    response: Response,
    repository: SessionRepository = Depends(get_session_repository),
) -> SessionService:
    """Session service bound to this request's cookies."""
    return SessionService(repository, ResponseCookieStore(request, response))


def _cookie_headers(response: Response) -> Optional[dict]:
    cookie = response.headers.get("set-cookie")
    return {"set-cookie": cookie} if cookie else None


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {"name": APP_NAME, "version": APP_VERSION}


# ===== REQUEST GOVERNOR =====

@app.get("/api/governor/stats")
def governor_stats(governor: RequestGovernor = Depends(get_governor)):
    """
    API load monitor: quota, queue and cache state.
    """
    return governor.get_stats()


@app.post("/api/governor/fetch")
async def governor_fetch(
    fetch: FetchRequest,
    governor: RequestGovernor = Depends(get_governor),
) -> Any:
    """
    Run an outbound call through the governor and return its JSON body.
    """
    try:
        return await governor.make_request(
            fetch.url,
            method=fetch.method,
            params=fetch.params,
            headers=fetch.headers,
            body=fetch.body,
            priority=fetch.priority,
        )
    except QuotaExceededError as e:
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={"Retry-After": str(max(1, round(e.wait_seconds + 0.5)))},
        )
    except RequestCancelledError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except TransportError as e:
        raise HTTPException(status_code=502, detail=str(e))


@app.delete("/api/governor/cache", response_model=ClearResult)
def clear_governor_cache(
    pattern: Optional[str] = Query(None, description="Only clear keys containing this substring"),
    governor: RequestGovernor = Depends(get_governor),
):
    """Clear cached responses."""
    return ClearResult(cleared=governor.clear_cache(pattern))


@app.delete("/api/governor/queue", response_model=ClearResult)
def clear_governor_queue(governor: RequestGovernor = Depends(get_governor)):
    """Cancel every queued request that has not started."""
    return ClearResult(cleared=governor.clear_queue())


# ===== SESSIONS =====

@app.post("/api/sessions", response_model=SessionRecord, status_code=201)
async def create_session(
    body: CreateSessionRequest,
    request: Request,
    service: SessionService = Depends(get_session_service),
):
    """Create a session on login and set the session cookie."""
    session = await service.create_session(
        body.user_id,
        user_agent=body.user_agent or request.headers.get("user-agent"),
        ip_address=body.ip_address,
    )
    if session is None:
        raise HTTPException(status_code=503, detail="Session could not be created")
    return session


@app.get("/api/sessions/current", response_model=SessionRecord)
async def current_session(
    response: Response,
    service: SessionService = Depends(get_session_service),
):
    """Validate the cookie's session and slide its expiry."""
    session = await service.validate_session()
    if session is None:
        # Keep the cookie-clearing header on the error response
        raise HTTPException(
            status_code=404,
            detail="No active session",
            headers=_cookie_headers(response),
        )
    return session


@app.delete("/api/sessions/current", response_model=InvalidationResult)
async def logout_here(service: SessionService = Depends(get_session_service)):
    """Invalidate this client's session. The cookie is always cleared."""
    return InvalidationResult(success=await service.invalidate_session())


@app.post("/api/sessions/cleanup", response_model=CleanupResult)
async def cleanup_sessions(service: SessionService = Depends(get_session_service)):
    """Sweep expired session rows."""
    return CleanupResult(removed=await service.cleanup_expired_sessions())


@app.delete("/api/sessions/{session_token}", response_model=InvalidationResult)
async def revoke_session(
    session_token: str,
    service: SessionService = Depends(get_session_service),
):
    """Invalidate a specific session, e.g. one on another device."""
    return InvalidationResult(success=await service.invalidate_session(session_token))


@app.get("/api/users/{user_id}/sessions", response_model=List[SessionRecord])
async def user_sessions(
    user_id: str,
    service: SessionService = Depends(get_session_service),
):
    """List a user's live sessions, most recent first."""
    return await service.get_user_sessions(user_id)


@app.delete("/api/users/{user_id}/sessions", response_model=InvalidationResult)
async def logout_everywhere(
    user_id: str,
    service: SessionService = Depends(get_session_service),
):
    """Invalidate every session of a user."""
    return InvalidationResult(success=await service.invalidate_all_user_sessions(user_id))
