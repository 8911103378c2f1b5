"""
Session State Machine.

Single source of truth for "who is signed in" across the dashboard.
Combines the identity provider, the Profile Loader, the Activity Tracker
and the Timer Engine behind four operations (``login``, ``logout``,
``extend_session``, ``reset_inactivity_timer``) and one observable
``AuthState`` snapshot.

Phases::

    UNINITIALIZED -> INITIALIZING -> AUTHENTICATED_ACTIVE <-> AUTHENTICATED_WARNING
                                  \\-> UNAUTHENTICATED

Race safety
-----------
``initialize()``, ``login()`` and ``logout()`` each start by taking a
fresh :class:`_Liveness` token and revoking the previous one.  After every
``await`` the operation re-checks its token and drops its result when the
token has been revoked by a newer operation or by :meth:`teardown`.
In-flight network calls are never aborted, only their effects.

``logout()`` clears local state and cancels timers before its first
``await`` so no late timer fire can re-trigger a warning or logout.

Provider session
----------------
The provider keeps one current session, and whichever sign-in resolves
last owns it.  The machine tracks the session the provider holds and the
session local state is bound to.  When a discarded sign-in lands, or a
login fails, :meth:`_reconcile_provider` brings the provider back in
line: it re-installs the bound session, or signs out when nothing is
bound.  A login whose own sign-in is still outstanding needs no help,
since that sign-in overwrites the provider when it lands.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Union

from session_core.logger import StructuredLogger
from session_core.models.auth_models import (
    AuthErrorCode,
    AuthState,
    GENERIC_LOGIN_FAILURE,
    IdentitySession,
    SignInResult,
)
from session_core.models.enums import ActivityKind, AuthEventType, SessionPhase
from session_core.models.user import UserProfile
from session_core.services.activity_tracker import ActivityTracker
from session_core.services.app_settings_service import AppSettingsService
from session_core.services.base_service import BaseService
from session_core.services.identity_client import IdentityProviderClient
from session_core.services.profile_loader import ProfileLoader
from session_core.services.session_timer import (
    AsyncioScheduler,
    Scheduler,
    SessionTimerEngine,
    WARNING_LEAD_MINUTES,
)
from session_core.utils.general import normalize_email

StateListener = Callable[[AuthState], None]


class _Liveness:
    """Token owned by one initialize/login/logout run."""

    __slots__ = ("operation", "alive", "signed_in")

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.alive = True
        self.signed_in = False

    def revoke(self) -> None:
        self.alive = False


class SessionStateMachine(BaseService):
    """Owns the observable auth state and its lifecycle.

    Construct one per application shell (and one per test); pass it to
    consumers instead of reaching for a global.

    Parameters
    ----------
    identity:
        Identity provider adapter.
    profile_loader:
        Resolves/provisions the profile after sign-in.
    settings:
        Source of the auto-logout timeout.
    logger:
        Structured logger.
    scheduler:
        Timer scheduling surface; defaults to the running asyncio loop.
    """

    def __init__(
        self,
        identity: IdentityProviderClient,
        profile_loader: ProfileLoader,
        settings: AppSettingsService,
        logger: StructuredLogger,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        super().__init__(logger)
        self._identity = identity
        self._profile_loader = profile_loader
        self._settings = settings
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()

        self._timer = SessionTimerEngine(
            scheduler=self._scheduler,
            on_warning=self._on_session_warning,
            on_expire=self._on_session_expired,
            logger=logger,
        )
        self._tracker = ActivityTracker(
            on_activity=self.reset_inactivity_timer,
            clock=self._scheduler.time,
        )

        self._state: AuthState = AuthState()
        self._listeners: list[StateListener] = []
        self._current: Optional[_Liveness] = None
        # What the provider currently holds, and what local state is bound to.
        self._provider_session: Optional[IdentitySession] = None
        self._bound_session: Optional[IdentitySession] = None
        self._torn_down: bool = False
        self._unsubscribe_auth: Optional[Callable[[], None]] = None
        self._background: set[asyncio.Task[Any]] = set()

    # ==================================================================
    # Observable state
    # ==================================================================

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[UserProfile]:
        return self._state.user

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def show_session_warning(self) -> bool:
        return self._state.show_session_warning

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def timer(self) -> SessionTimerEngine:
        return self._timer

    @property
    def tracker(self) -> ActivityTracker:
        return self._tracker

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener* for every new snapshot; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _update(self, **changes: Any) -> None:
        if self._torn_down:
            return
        new_state = self._state.model_copy(update=changes)
        if new_state == self._state:
            return
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as exc:
                self._logger.error("Auth state listener raised: %s", exc, exc_info=True)

    # ==================================================================
    # Liveness bookkeeping
    # ==================================================================

    def _begin(self, operation: str) -> _Liveness:
        if self._current is not None:
            self._current.revoke()
        token = _Liveness(operation)
        if self._torn_down:
            token.revoke()
        self._current = token
        return token

    def _finish(self, token: _Liveness) -> None:
        if self._current is token:
            self._current = None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ==================================================================
    # Initialize
    # ==================================================================

    async def initialize(self) -> None:
        """Restore an existing identity session at startup.  Never raises.

        Loads the auto-logout timeout concurrently and subscribes to
        out-of-band auth events.
        """
        token = self._begin("initialize")
        if not token.alive:
            return
        self._logger.info("Initializing session state.")
        self._update(is_loading=True, phase=SessionPhase.INITIALIZING)

        if self._unsubscribe_auth is None:
            try:
                self._unsubscribe_auth = self._identity.on_auth_state_change(
                    self._handle_auth_event
                )
            except Exception as exc:
                self._logger.warning("Could not subscribe to auth events: %s", exc)

        await asyncio.gather(
            self._load_timeout_setting(),
            self._restore_session(token),
        )

    async def _restore_session(self, token: _Liveness) -> None:
        try:
            session: Optional[IdentitySession] = await self._identity.get_session()
        except Exception as exc:
            self._log_event(
                "BOOTSTRAP_FAILED",
                "Session retrieval failed; presenting login: %s",
                exc,
                level=logging.ERROR,
            )
            self._resolve_unauthenticated(token)
            return

        if not token.alive:
            return
        if session is None:
            self._logger.info("No existing session.")
            self._resolve_unauthenticated(token)
            return

        self._logger.info("Found existing session for %s.", session.email)
        self._provider_session = session
        self._bound_session = session
        try:
            profile = await self._profile_loader.load_profile(
                session.user_id, session.email, is_current=lambda: token.alive,
            )
        except Exception as exc:
            self._log_event(
                "BOOTSTRAP_FAILED",
                "Profile load failed during startup for %s: %s",
                session.email,
                exc,
                level=logging.ERROR,
            )
            await self._abandon_session(token, session)
            return

        if not token.alive:
            return
        self._finish(token)
        self._establish(profile)
        self._log_event(
            "SESSION_RESTORED",
            "Session restored for %s.",
            profile.email,
            user_id=profile.id,
        )

    async def _load_timeout_setting(self) -> None:
        try:
            minutes = await self._settings.get_auto_logout_timeout_minutes()
        except Exception as exc:
            self._logger.warning("Failed to load auto-logout timeout: %s", exc)
            return
        if self._torn_down:
            return
        changed = self._timer.set_timeout_minutes(minutes)
        if changed and self._state.user is not None and self._timer.is_armed:
            self._rearm()

    # ==================================================================
    # Login
    # ==================================================================

    async def login(self, email: str, password: str) -> bool:
        """Sign in and resolve the profile.

        Returns ``True`` only when both steps succeed and this call is
        still the current one.  Never raises.
        """
        email = normalize_email(email)
        token = self._begin("login")
        if not token.alive:
            return False

        self._log_event("LOGIN_ATTEMPT", "Login attempt for %s.", email, email=email)
        self._stop_session_activity()
        self._update(
            user=None,
            is_loading=True,
            show_session_warning=False,
            phase=SessionPhase.INITIALIZING,
        )

        self._bound_session = None
        result = await self._sign_in(email, password)
        signed_in = result.success and result.session is not None
        if signed_in:
            self._provider_session = result.session
            if token.alive:
                token.signed_in = True
                self._bound_session = result.session

        if not token.alive:
            self._logger.debug("Discarding superseded login result for %s.", email)
            if signed_in:
                await self._reconcile_provider()
            return False

        if not signed_in:
            self._finish(token)
            self._update(is_loading=False, phase=SessionPhase.UNAUTHENTICATED)
            await self._reconcile_provider()
            return False

        session = result.session
        try:
            profile = await self._profile_loader.load_profile(
                session.user_id, session.email or email, is_current=lambda: token.alive,
            )
        except Exception as exc:
            self._log_event(
                "LOGIN_FAILED",
                "Profile load failed for %s; signing identity back out: %s",
                email,
                exc,
                level=logging.ERROR,
                email=email,
            )
            await self._abandon_session(token, session)
            return False

        if not token.alive:
            self._logger.debug("Discarding superseded profile for %s.", email)
            await self._reconcile_provider()
            return False

        self._finish(token)
        self._establish(profile)
        self._log_event(
            "LOGIN",
            "User authenticated: %s (%s)",
            profile.name,
            profile.internal_role,
            email=profile.email,
            user_id=profile.id,
        )
        return True

    async def _sign_in(self, email: str, password: str) -> SignInResult:
        try:
            return await self._identity.sign_in_with_password(email, password)
        except Exception as exc:
            self._log_event(
                "LOGIN_FAILED",
                "Sign-in raised for %s: %s",
                email,
                exc,
                level=logging.ERROR,
                exc_info=True,
                email=email,
            )
            return SignInResult(
                error_code=AuthErrorCode.UNKNOWN_ERROR,
                error_message=GENERIC_LOGIN_FAILURE,
            )

    async def _abandon_session(self, token: _Liveness, session: IdentitySession) -> None:
        """Undo a sign-in whose profile could not be loaded.

        Runs even after teardown or logout; only a newer login that has
        rebound the machine keeps the provider session it now owns.
        """
        if self._bound_session is session:
            self._bound_session = None
        if token.alive:
            await self._compensating_sign_out(session.email)
            self._resolve_unauthenticated(token)
        else:
            await self._reconcile_provider()

    async def _compensating_sign_out(self, email: str) -> None:
        error: Optional[str]
        try:
            error = await self._identity.sign_out()
        except Exception as exc:
            error = str(exc)
        self._provider_session = None
        if error:
            self._logger.warning("Compensating sign-out for %s failed: %s", email, error)

    async def _reconcile_provider(self) -> None:
        """Make the provider hold the session local state is bound to."""
        current = self._current
        if (
            current is not None
            and current.alive
            and current.operation == "login"
            and not current.signed_in
        ):
            return

        held = self._provider_session
        bound = self._bound_session
        if held is None or (bound is not None and bound.user_id == held.user_id):
            return

        if bound is None:
            self._log_event(
                "PROVIDER_RECONCILED",
                "Signing out stray provider session for %s.",
                held.email,
                user_id=held.user_id,
            )
            await self._compensating_sign_out(held.email)
            return

        self._log_event(
            "PROVIDER_RECONCILED",
            "Provider session for %s replaced %s; re-installing it.",
            held.email,
            bound.email,
            level=logging.WARNING,
            user_id=bound.user_id,
        )
        error: Optional[str]
        try:
            error = await self._identity.restore_session(bound)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
        if error is None:
            self._provider_session = bound
            return

        self._logger.warning("Could not re-install session for %s: %s", bound.email, error)
        logout_token = self._start_logout("identity_mismatch")
        if logout_token is not None:
            await self._sign_out_remote(logout_token)

    # ==================================================================
    # Logout
    # ==================================================================

    async def logout(self) -> None:
        """Clear local state, then revoke the provider session.  Idempotent."""
        token = self._start_logout("explicit")
        if token is not None:
            await self._sign_out_remote(token)

    def _start_logout(self, reason: str) -> Optional[_Liveness]:
        """Synchronous half of logout.

        Returns the token for the remote sign-out, or ``None`` when there
        was no session to end.
        """
        had_session = (
            self._provider_session is not None
            or self._bound_session is not None
            or self._state.user is not None
        )
        token = self._begin("logout")
        self._stop_session_activity()
        previous = self._state.user
        self._provider_session = None
        self._bound_session = None
        self._update(
            user=None,
            is_loading=had_session and token.alive,
            show_session_warning=False,
            phase=SessionPhase.UNAUTHENTICATED,
        )
        if not had_session:
            self._finish(token)
            self._logger.debug("Logout requested with no active session.")
            return None

        self._log_event(
            "LOGOUT",
            "User logged out (%s): %s",
            reason,
            previous.email if previous is not None else "unknown",
            user_id=previous.id if previous is not None else "unknown",
            reason=reason,
        )
        return token

    async def _sign_out_remote(self, token: _Liveness) -> None:
        error: Optional[str]
        try:
            error = await self._identity.sign_out()
        except Exception as exc:
            error = str(exc)
        if error:
            self._logger.warning("Server-side sign_out failed: %s", error)
        if token.alive:
            self._finish(token)
            self._update(is_loading=False)

    # ==================================================================
    # Inactivity
    # ==================================================================

    def extend_session(self) -> None:
        """Dismiss the warning and re-arm from now.  No-op when signed out."""
        if self._state.user is None:
            return
        self._log_event("SESSION_EXTENDED", "Session extended by user.", user_id=self._state.user.id)
        self._tracker.touch()
        self._rearm()

    def reset_inactivity_timer(self) -> bool:
        """Assert user presence.  Ignored when signed out or while the page is hidden.

        Returns ``True`` when the timers were re-armed.
        """
        if self._state.user is None or not self._timer.is_foreground:
            return False
        self._tracker.touch()
        self._rearm()
        return True

    def handle_activity(self, kind: Union[ActivityKind, str]) -> bool:
        """Feed an interaction event to the Activity Tracker."""
        return self._tracker.record(kind)

    def set_page_visible(self, visible: bool) -> None:
        """Forward a page visibility change to the Timer Engine."""
        rearmed = self._timer.set_foreground(visible)
        if rearmed and self._state.show_session_warning:
            self._update(show_session_warning=False, phase=SessionPhase.AUTHENTICATED_ACTIVE)

    def _rearm(self) -> None:
        self._timer.arm()
        if self._state.show_session_warning:
            self._update(show_session_warning=False, phase=SessionPhase.AUTHENTICATED_ACTIVE)

    def _on_session_warning(self) -> None:
        if self._state.user is None:
            return
        self._log_event(
            "SESSION_WARNING",
            "Session expiring in %d minutes due to inactivity.",
            WARNING_LEAD_MINUTES,
            user_id=self._state.user.id,
        )
        self._update(show_session_warning=True, phase=SessionPhase.AUTHENTICATED_WARNING)

    def _on_session_expired(self) -> None:
        self._log_event("SESSION_EXPIRED", "Auto-logout due to inactivity.")
        token = self._start_logout("inactivity")
        if token is not None:
            self._spawn(self._sign_out_remote(token))

    # ==================================================================
    # Out-of-band auth events
    # ==================================================================

    def _handle_auth_event(self, event: AuthEventType) -> None:
        if self._torn_down:
            return
        if event != AuthEventType.SIGNED_OUT:
            # Sign-ins are handled by login(); reacting here would double-apply.
            self._logger.debug("Ignoring auth event %s.", event)
            return
        if (
            self._state.user is None
            and self._provider_session is None
            and self._bound_session is None
        ):
            return
        self._log_event("SIGNED_OUT_REMOTE", "Identity provider reported sign-out.")
        self._stop_session_activity()
        self._provider_session = None
        self._bound_session = None
        in_flight = self._current is not None and self._current.alive
        changes: dict[str, Any] = {
            "user": None,
            "show_session_warning": False,
            "phase": SessionPhase.UNAUTHENTICATED,
        }
        if not in_flight:
            changes["is_loading"] = False
        self._update(**changes)

    # ==================================================================
    # Teardown
    # ==================================================================

    def teardown(self) -> None:
        """Stop all timers and listeners; discard results of in-flight work."""
        if self._torn_down:
            return
        self._torn_down = True
        if self._current is not None:
            self._current.revoke()
            self._current = None
        self._stop_session_activity()
        if self._unsubscribe_auth is not None:
            try:
                self._unsubscribe_auth()
            except Exception as exc:
                self._logger.warning("Auth event unsubscribe failed: %s", exc)
            self._unsubscribe_auth = None
        self._logger.info("Session state torn down.")

    # ==================================================================
    # Private helpers
    # ==================================================================

    def _establish(self, profile: UserProfile) -> None:
        self._update(
            user=profile,
            is_loading=False,
            show_session_warning=False,
            phase=SessionPhase.AUTHENTICATED_ACTIVE,
        )
        self._tracker.attach()
        self._timer.arm()

    def _resolve_unauthenticated(self, token: _Liveness) -> None:
        if not token.alive:
            return
        self._finish(token)
        self._bound_session = None
        self._update(
            user=None,
            is_loading=False,
            show_session_warning=False,
            phase=SessionPhase.UNAUTHENTICATED,
        )

    def _stop_session_activity(self) -> None:
        self._timer.cancel()
        self._tracker.detach()
