"""
Tests for the client-side session manager and its periodic validation.
"""
import asyncio

from restay.sessions import SessionManager, SessionState


def make_manager(service, validation_interval=3600, cleanup_interval=3600):
    return SessionManager(
        service,
        validation_interval=validation_interval,
        cleanup_interval=cleanup_interval,
    )


def test_start_without_cookie_reports_expired(service):
    async def scenario():
        manager = make_manager(service)
        await manager.start("user-1")
        state, current, running = manager.state, manager.current_session, manager.is_running
        await manager.stop()
        return state, current, running, manager

    state, current, running, manager = asyncio.run(scenario())
    assert state is SessionState.EXPIRED
    assert current is None
    assert running is True
    assert manager.is_running is False
    assert manager.state is SessionState.UNINITIALIZED


def test_login_then_logout(service, cookies):
    async def scenario():
        manager = make_manager(service)
        await manager.start("user-1")

        session = await manager.create_session(user_agent="pytest")
        assert manager.state is SessionState.ACTIVE
        assert manager.current_session.id == session.id
        assert [s.id for s in manager.user_sessions] == [session.id]

        await manager.invalidate_current_session()
        result = (manager.state, manager.current_session, manager.user_sessions)
        await manager.stop()
        return result

    state, current, sessions = asyncio.run(scenario())
    assert state is SessionState.INVALIDATED
    assert current is None
    assert sessions == []
    assert cookies.get() is None


def test_start_reuses_cookie_session(service):
    async def scenario():
        created = await service.create_session("user-1")
        manager = make_manager(service)
        await manager.start("user-1")
        result = (manager.state, manager.current_session)
        await manager.stop()
        return created, result

    created, (state, current) = asyncio.run(scenario())
    assert state is SessionState.ACTIVE
    assert current.session_token == created.session_token


def test_periodic_validation_notices_revoked_session(service, repository):
    async def scenario():
        manager = make_manager(service, validation_interval=0.01)
        await manager.start("user-1")
        session = await manager.create_session()

        # Revoked from another device
        repository.deactivate_by_token(session.session_token)
        await asyncio.sleep(0.05)

        result = (manager.state, manager.current_session)
        await manager.stop()
        return result

    state, current = asyncio.run(scenario())
    assert state is SessionState.EXPIRED
    assert current is None


def test_revalidation_keeps_invalidated_state(service):
    async def scenario():
        manager = make_manager(service)
        await manager.start("user-1")
        await manager.create_session()
        await manager.invalidate_current_session()
        await manager.validate_current_session()
        state = manager.state
        await manager.stop()
        return state

    assert asyncio.run(scenario()) is SessionState.INVALIDATED


def test_invalidating_current_token_by_value(service, cookies):
    async def scenario():
        manager = make_manager(service)
        await manager.start("user-1")
        session = await manager.create_session()
        await manager.invalidate_session(session.session_token)
        result = (manager.state, manager.current_session)
        await manager.stop()
        return result

    state, current = asyncio.run(scenario())
    assert state is SessionState.INVALIDATED
    assert current is None
    assert cookies.get() is None


def test_invalidate_all_sessions(service, cookies):
    async def scenario():
        manager = make_manager(service)
        await manager.start("user-1")
        await manager.create_session()
        await manager.invalidate_all_sessions()
        result = (manager.state, manager.user_sessions)
        remaining = await service.get_user_sessions("user-1")
        await manager.stop()
        return result, remaining

    (state, sessions), remaining = asyncio.run(scenario())
    assert state is SessionState.INVALIDATED
    assert sessions == []
    assert remaining == []
    assert cookies.get() is None
