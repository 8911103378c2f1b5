"""Tests for the session state machine: bootstrap, login/logout, inactivity and races."""

from __future__ import annotations

import asyncio

import pytest

from session_core.models.auth_models import IdentitySession
from session_core.models.enums import ActivityKind, AuthEventType, SessionPhase

from tests.conftest import Harness, drain

JANE = ("jane@co.com", "secret", "id-jane")


async def _signed_in(h: Harness, email: str = JANE[0], password: str = JANE[1], user_id: str = JANE[2]) -> None:
    h.identity.add_account(email, password, user_id)
    assert await h.machine.login(email, password) is True


# ---------------------------------------------------------------------------
# Initialize
# ---------------------------------------------------------------------------

class TestInitialize:
    @pytest.mark.asyncio
    async def test_restores_existing_session(self, harness):
        harness.identity.session = IdentitySession(user_id="id-jane", email="jane@co.com")

        await harness.machine.initialize()

        state = harness.machine.state
        assert state.user is not None
        assert state.user.name == "Jane"
        assert state.is_loading is False
        assert state.phase == SessionPhase.AUTHENTICATED_ACTIVE
        assert harness.machine.timer.is_armed
        assert harness.machine.tracker.is_attached
        assert [s.phase for s in harness.snapshots] == [
            SessionPhase.INITIALIZING,
            SessionPhase.AUTHENTICATED_ACTIVE,
        ]

    @pytest.mark.asyncio
    async def test_no_session_resolves_signed_out(self, harness):
        await harness.machine.initialize()

        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert not harness.machine.timer.is_armed

    @pytest.mark.asyncio
    async def test_session_retrieval_error_resolves_signed_out(self, harness):
        harness.identity.get_session_error = ConnectionError("offline")

        await harness.machine.initialize()

        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_profile_failure_signs_identity_out(self, harness):
        harness.identity.session = IdentitySession(user_id="id-jane", email="jane@co.com")
        harness.profiles.get_error = ConnectionError("users table unreachable")

        await harness.machine.initialize()

        assert harness.identity.sign_out_calls == 1
        assert harness.identity.session is None
        assert harness.machine.user is None
        assert harness.machine.is_loading is False

    @pytest.mark.asyncio
    async def test_applies_configured_timeout(self, harness):
        harness.settings.minutes = 10
        harness.identity.session = IdentitySession(user_id="id-jane", email="jane@co.com")

        await harness.machine.initialize()

        assert harness.machine.timer.timeout_minutes == 10
        assert harness.machine.timer.next_warning_at == 300.0

    @pytest.mark.asyncio
    async def test_subscribes_to_auth_events_once(self, harness):
        await harness.machine.initialize()
        await harness.machine.initialize()
        assert harness.identity.subscriber_count == 1


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class TestLogin:
    @pytest.mark.asyncio
    async def test_successful_login_establishes_session(self, harness):
        harness.identity.add_account(*JANE)

        ok = await harness.machine.login("  Jane@Co.com ", "secret")

        assert ok is True
        user = harness.machine.user
        assert user is not None
        assert (user.id, user.name, user.email) == ("id-jane", "Jane", "jane@co.com")
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.AUTHENTICATED_ACTIVE
        assert harness.machine.timer.is_armed
        assert harness.machine.tracker.is_attached
        assert harness.identity.sign_in_calls == ["jane@co.com"]
        assert len(harness.bootstrap.performance) == 1
        assert len(harness.bootstrap.tasks) == 3
        assert [s.phase for s in harness.snapshots] == [
            SessionPhase.INITIALIZING,
            SessionPhase.AUTHENTICATED_ACTIVE,
        ]

    @pytest.mark.asyncio
    async def test_bad_credentials_return_false(self, harness):
        harness.identity.add_account(*JANE)

        ok = await harness.machine.login("jane@co.com", "wrong")

        assert ok is False
        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert harness.identity.sign_out_calls == 0

    @pytest.mark.asyncio
    async def test_profile_failure_compensates_with_sign_out(self, harness):
        harness.identity.add_account(*JANE)
        harness.profiles.get_error = ConnectionError("users table unreachable")

        ok = await harness.machine.login("jane@co.com", "secret")

        assert ok is False
        assert harness.identity.sign_out_calls == 1
        assert harness.identity.session is None
        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert not harness.machine.timer.is_armed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("release_first", ["a", "b"])
    async def test_last_login_wins(self, harness, release_first):
        harness.identity.add_account("a@co.com", "pw", "id-a")
        harness.identity.add_account("b@co.com", "pw", "id-b")
        gates = {"a": harness.identity.gate("a@co.com"), "b": harness.identity.gate("b@co.com")}

        task_a = asyncio.create_task(harness.machine.login("a@co.com", "pw"))
        await drain()
        task_b = asyncio.create_task(harness.machine.login("b@co.com", "pw"))
        await drain()

        release_second = "b" if release_first == "a" else "a"
        gates[release_first].set()
        await drain()
        gates[release_second].set()
        result_a, result_b = await asyncio.gather(task_a, task_b)

        assert result_a is False
        assert result_b is True
        assert harness.machine.user is not None
        assert harness.machine.user.email == "b@co.com"
        assert harness.machine.is_loading is False
        assert "id-a" not in harness.profiles.rows
        assert harness.identity.session is not None
        assert harness.identity.session.user_id == "id-b"

    @pytest.mark.asyncio
    async def test_teardown_discards_in_flight_login(self, harness):
        harness.identity.add_account(*JANE)
        gate = harness.identity.gate("jane@co.com")

        task = asyncio.create_task(harness.machine.login("jane@co.com", "secret"))
        await drain()
        before = harness.machine.state
        seen = len(harness.snapshots)

        harness.machine.teardown()
        gate.set()
        ok = await task

        assert ok is False
        assert harness.machine.state is before
        assert len(harness.snapshots) == seen
        assert harness.profiles.rows == {}
        assert not harness.machine.timer.is_armed
        assert harness.identity.sign_out_calls == 1
        assert harness.identity.session is None

    @pytest.mark.asyncio
    async def test_logout_supersedes_pending_login(self, harness):
        harness.identity.add_account(*JANE)
        gate = harness.identity.gate("jane@co.com")

        task = asyncio.create_task(harness.machine.login("jane@co.com", "secret"))
        await drain()
        await harness.machine.logout()
        gate.set()

        assert await task is False
        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.identity.sign_out_calls == 1
        assert harness.identity.session is None

    @pytest.mark.asyncio
    async def test_lost_session_reinstall_forces_logout(self, harness):
        harness.identity.add_account("a@co.com", "pw", "id-a")
        harness.identity.add_account("b@co.com", "pw", "id-b")
        gate_a = harness.identity.gate("a@co.com")
        gate_b = harness.identity.gate("b@co.com")
        harness.identity.restore_error = "refresh token revoked"

        task_a = asyncio.create_task(harness.machine.login("a@co.com", "pw"))
        await drain()
        task_b = asyncio.create_task(harness.machine.login("b@co.com", "pw"))
        await drain()
        gate_b.set()
        assert await task_b is True
        gate_a.set()
        assert await task_a is False

        assert harness.identity.restore_calls == 1
        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert not harness.machine.timer.is_armed
        assert harness.identity.sign_out_calls == 1
        assert harness.identity.session is None

    @pytest.mark.asyncio
    async def test_sign_in_exception_resolves_signed_out(self, harness):
        harness.identity.sign_in_error = RuntimeError("adapter bug")

        ok = await harness.machine.login("jane@co.com", "secret")

        assert ok is False
        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert harness.identity.sign_out_calls == 0

    @pytest.mark.asyncio
    async def test_profile_failure_after_teardown_still_signs_out(self, harness):
        harness.identity.add_account(*JANE)
        harness.profiles.get_gate = asyncio.Event()

        task = asyncio.create_task(harness.machine.login("jane@co.com", "secret"))
        await drain()
        assert harness.identity.session is not None

        harness.machine.teardown()
        harness.profiles.get_error = ConnectionError("users table unreachable")
        harness.profiles.get_gate.set()

        assert await task is False
        assert harness.identity.sign_out_calls == 1
        assert harness.identity.session is None

    @pytest.mark.asyncio
    async def test_teardown_during_profile_fetch_skips_seeding(self, harness):
        harness.identity.add_account(*JANE)
        harness.profiles.get_gate = asyncio.Event()

        task = asyncio.create_task(harness.machine.login("jane@co.com", "secret"))
        await drain()
        harness.machine.teardown()
        harness.profiles.get_gate.set()

        assert await task is False
        assert harness.bootstrap.performance == []
        assert harness.bootstrap.assignments == []
        assert harness.bootstrap.tasks == []

    @pytest.mark.asyncio
    async def test_logout_during_startup_profile_fetch_skips_seeding(self, harness):
        harness.identity.session = IdentitySession(user_id="id-jane", email="jane@co.com")
        harness.profiles.get_gate = asyncio.Event()

        init = asyncio.create_task(harness.machine.initialize())
        await drain()
        await harness.machine.logout()
        harness.profiles.get_gate.set()
        await init

        assert harness.machine.user is None
        assert harness.bootstrap.tasks == []
        assert harness.identity.sign_out_calls == 1

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_login(self, harness):
        def broken(_state):
            raise RuntimeError("render bug")

        harness.machine.subscribe(broken)
        harness.identity.add_account(*JANE)

        assert await harness.machine.login("jane@co.com", "secret") is True
        assert harness.machine.phase == SessionPhase.AUTHENTICATED_ACTIVE

    @pytest.mark.asyncio
    async def test_unsubscribed_listener_stops_receiving(self, harness):
        received = []
        unsubscribe = harness.machine.subscribe(received.append)
        unsubscribe()
        await _signed_in(harness)
        assert received == []


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_state_and_timers(self, harness):
        await _signed_in(harness)

        await harness.machine.logout()

        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert not harness.machine.timer.is_armed
        assert not harness.machine.tracker.is_attached
        assert harness.scheduler.pending == []
        assert harness.identity.sign_out_calls == 1

    @pytest.mark.asyncio
    async def test_double_logout_is_idempotent(self, harness):
        await _signed_in(harness)

        await harness.machine.logout()
        await harness.machine.logout()

        assert harness.identity.sign_out_calls == 1
        assert harness.machine.user is None
        assert harness.machine.is_loading is False

    @pytest.mark.asyncio
    async def test_concurrent_logouts_sign_out_once(self, harness):
        await _signed_in(harness)

        await asyncio.gather(harness.machine.logout(), harness.machine.logout())

        assert harness.identity.sign_out_calls == 1
        assert harness.machine.is_loading is False

    @pytest.mark.asyncio
    async def test_logout_when_signed_out_is_noop(self, harness):
        await harness.machine.initialize()

        await harness.machine.logout()

        assert harness.identity.sign_out_calls == 0
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert harness.machine.is_loading is False

    @pytest.mark.asyncio
    async def test_remote_sign_out_error_still_clears_locally(self, harness):
        await _signed_in(harness)
        harness.identity.sign_out_error = "network unreachable"

        await harness.machine.logout()

        assert harness.machine.user is None
        assert harness.machine.is_loading is False


# ---------------------------------------------------------------------------
# Inactivity
# ---------------------------------------------------------------------------

class TestInactivity:
    @pytest.mark.asyncio
    async def test_warning_then_expiry_logs_out(self, harness):
        await _signed_in(harness)

        harness.scheduler.advance(1500)
        assert harness.machine.show_session_warning is True
        assert harness.machine.phase == SessionPhase.AUTHENTICATED_WARNING
        assert harness.machine.user is not None

        harness.scheduler.advance(300)
        assert harness.machine.user is None
        assert harness.machine.show_session_warning is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED

        await drain()
        assert harness.identity.sign_out_calls == 1
        assert harness.machine.is_loading is False

    @pytest.mark.asyncio
    async def test_extend_session_dismisses_warning(self, harness):
        await _signed_in(harness)
        harness.scheduler.advance(1500)
        assert harness.machine.timer.next_warning_at is None

        harness.machine.extend_session()

        assert harness.machine.show_session_warning is False
        assert harness.machine.phase == SessionPhase.AUTHENTICATED_ACTIVE
        assert harness.machine.timer.next_warning_at == 3000.0
        harness.scheduler.advance(300)
        assert harness.machine.user is not None

    @pytest.mark.asyncio
    async def test_extend_session_when_signed_out_does_nothing(self, harness):
        await harness.machine.initialize()
        harness.machine.extend_session()
        assert harness.scheduler.pending == []

    @pytest.mark.asyncio
    async def test_activity_rearms_from_now(self, harness):
        await _signed_in(harness)
        harness.scheduler.advance(100)

        assert harness.machine.handle_activity(ActivityKind.CLICK) is True

        assert harness.machine.timer.next_warning_at == 1600.0

    @pytest.mark.asyncio
    async def test_activity_inside_throttle_window_is_ignored(self, harness):
        await _signed_in(harness)
        harness.scheduler.advance(10)

        assert harness.machine.handle_activity(ActivityKind.POINTER_MOVE) is False

        assert harness.machine.timer.next_warning_at == 1500.0

    @pytest.mark.asyncio
    async def test_activity_during_warning_clears_it(self, harness):
        await _signed_in(harness)
        harness.scheduler.advance(1530)

        harness.machine.handle_activity(ActivityKind.KEY_PRESS)

        assert harness.machine.show_session_warning is False
        assert harness.machine.phase == SessionPhase.AUTHENTICATED_ACTIVE

    @pytest.mark.asyncio
    async def test_hidden_page_activity_does_not_rearm(self, harness):
        await _signed_in(harness)
        harness.machine.set_page_visible(False)
        harness.scheduler.advance(100)

        harness.machine.handle_activity(ActivityKind.CLICK)

        assert harness.machine.timer.next_warning_at == 1500.0

    @pytest.mark.asyncio
    async def test_hidden_page_activity_does_not_use_up_throttle_window(self, harness):
        await _signed_in(harness)
        harness.machine.set_page_visible(False)
        harness.scheduler.advance(100)
        assert harness.machine.handle_activity(ActivityKind.CLICK) is False

        harness.machine.set_page_visible(True)
        harness.scheduler.advance(5)

        assert harness.machine.handle_activity(ActivityKind.CLICK) is True
        assert harness.machine.timer.next_warning_at == 1605.0

    @pytest.mark.asyncio
    async def test_becoming_visible_rearms_and_clears_warning(self, harness):
        await _signed_in(harness)
        harness.machine.set_page_visible(False)
        harness.scheduler.advance(1600)
        assert harness.machine.show_session_warning is True

        harness.machine.set_page_visible(True)

        assert harness.machine.show_session_warning is False
        assert harness.machine.timer.next_warning_at == 3100.0

    @pytest.mark.asyncio
    async def test_activity_after_logout_is_ignored(self, harness):
        await _signed_in(harness)
        await harness.machine.logout()
        harness.scheduler.advance(100)

        assert harness.machine.handle_activity(ActivityKind.CLICK) is False
        assert harness.scheduler.pending == []


# ---------------------------------------------------------------------------
# Out-of-band events and teardown
# ---------------------------------------------------------------------------

class TestAuthEvents:
    @pytest.mark.asyncio
    async def test_remote_sign_out_clears_session(self, harness):
        await harness.machine.initialize()
        await _signed_in(harness)

        harness.identity.emit(AuthEventType.SIGNED_OUT)

        assert harness.machine.user is None
        assert harness.machine.is_loading is False
        assert harness.machine.phase == SessionPhase.UNAUTHENTICATED
        assert not harness.machine.timer.is_armed
        assert not harness.machine.tracker.is_attached

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event",
        [AuthEventType.SIGNED_IN, AuthEventType.TOKEN_REFRESHED, AuthEventType.USER_UPDATED],
    )
    async def test_other_events_leave_state_alone(self, harness, event):
        await harness.machine.initialize()
        await _signed_in(harness)
        before = harness.machine.state

        harness.identity.emit(event)

        assert harness.machine.state is before

    @pytest.mark.asyncio
    async def test_teardown_unsubscribes_and_stops_timers(self, harness):
        await harness.machine.initialize()
        await _signed_in(harness)

        harness.machine.teardown()

        assert harness.identity.subscriber_count == 0
        assert harness.scheduler.pending == []
        before = harness.machine.state
        harness.scheduler.advance(3600)
        assert harness.machine.state is before
