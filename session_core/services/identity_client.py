"""
Identity Provider Client.

Thin adapter over ``supabase.AsyncClient.auth``.  It converts provider
objects into the core's ``IdentitySession`` model and provider
exceptions into structured ``SignInResult`` errors, so the session state
machine never inspects raw Supabase errors.

Only :meth:`get_session` may raise; the state machine treats any raised
error during bootstrap as "no session".
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from session_core.database import DatabaseManager
from session_core.logger import StructuredLogger
from session_core.models.auth_models import (
    AuthErrorCode,
    GENERIC_LOGIN_FAILURE,
    IdentitySession,
    SignInResult,
    SUPABASE_ERROR_MAP,
)
from session_core.models.enums import AuthEventType
from session_core.services.base_service import BaseService

AuthEventCallback = Callable[[AuthEventType], None]


class IdentityProviderClient(BaseService):
    """Session retrieval, password sign-in, sign-out and auth-event relay.

    Parameters
    ----------
    db:
        ``DatabaseManager`` owning the Supabase client.
    logger:
        Structured logger.
    """

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._db = db

    # ------------------------------------------------------------------
    # Session retrieval
    # ------------------------------------------------------------------

    async def get_session(self) -> Optional[IdentitySession]:
        """Return the persisted provider session, or ``None`` when signed out.

        Raises whatever the provider raises (including ``RuntimeError`` in
        offline mode).
        """
        session = await self._db.supabase.auth.get_session()
        if session is None or getattr(session, "user", None) is None:
            return None
        return self._to_identity_session(session)

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        """Authenticate with email + password.  Never raises."""
        try:
            response = await self._db.supabase.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as exc:
            return self._classify_sign_in_error(exc)

        if getattr(response, "user", None) is None or getattr(response, "session", None) is None:
            self._logger.error("Sign-in returned no user data for %s.", email)
            return SignInResult(
                error_code=AuthErrorCode.NO_USER_DATA,
                error_message=GENERIC_LOGIN_FAILURE,
            )
        try:
            session = self._to_identity_session(response.session)
        except (AttributeError, TypeError, ValueError) as exc:
            self._logger.error("Sign-in returned no usable user data for %s: %s", email, exc)
            return SignInResult(
                error_code=AuthErrorCode.NO_USER_DATA,
                error_message=GENERIC_LOGIN_FAILURE,
            )
        return SignInResult(session=session)

    async def sign_out(self) -> Optional[str]:
        """Revoke the provider session.

        Returns ``None`` on success (or when offline, where there is no
        remote session to revoke) and the error text otherwise.
        """
        try:
            await self._db.supabase.auth.sign_out()
        except RuntimeError:
            self._logger.debug("Offline; skipping server-side sign_out.")
            return None
        except Exception as exc:
            return str(exc) or type(exc).__name__
        return None

    async def restore_session(self, session: IdentitySession) -> Optional[str]:
        """Make *session* the provider's current session again.

        Returns ``None`` on success and the error text otherwise.
        """
        if not session.access_token or not session.refresh_token:
            return "session carries no tokens"
        try:
            await self._db.supabase.auth.set_session(
                session.access_token, session.refresh_token,
            )
        except Exception as exc:
            return str(exc) or type(exc).__name__
        return None

    # ------------------------------------------------------------------
    # Out-of-band events
    # ------------------------------------------------------------------

    def on_auth_state_change(self, callback: AuthEventCallback) -> Callable[[], None]:
        """Relay provider auth events to *callback*; returns an unsubscribe function.

        Unknown event names are dropped.  In offline mode no events can
        arrive and the returned function is a no-op.
        """
        try:
            client = self._db.supabase
        except RuntimeError:
            self._logger.debug("Offline; auth state events unavailable.")
            return lambda: None

        def _relay(event: Any, _session: Any) -> None:
            try:
                event_type = AuthEventType(str(getattr(event, "value", event)))
            except ValueError:
                self._logger.debug("Ignoring unknown auth event %r.", event)
                return
            callback(event_type)

        subscription = client.auth.on_auth_state_change(_relay)
        return subscription.unsubscribe

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_identity_session(session: Any) -> IdentitySession:
        user = session.user
        return IdentitySession(
            user_id=str(user.id),
            email=user.email or "",
            access_token=getattr(session, "access_token", None),
            refresh_token=getattr(session, "refresh_token", None),
            expires_at=getattr(session, "expires_at", None),
        )

    def _classify_sign_in_error(self, exc: Exception) -> SignInResult:
        """Map a provider or network exception to a ``SignInResult``."""
        if isinstance(exc, (ConnectionError, TimeoutError, RuntimeError)):
            self._log_event(
                "LOGIN_NETWORK_ERROR",
                "Network error during sign-in: %s",
                exc,
                level=logging.WARNING,
            )
            return SignInResult(
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="Cannot reach the server. Check your internet connection.",
            )

        error_str = str(exc).lower()
        code_attr = str(getattr(exc, "code", "") or "").lower()
        for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
            if code_key in error_str or code_key == code_attr:
                self._log_event(
                    "LOGIN_FAILED",
                    "Sign-in rejected (%s): %s",
                    code_key,
                    exc,
                    level=logging.WARNING,
                    error_code=str(error_code),
                )
                return SignInResult(error_code=error_code, error_message=human_message)

        self._log_event(
            "LOGIN_FAILED",
            "Unknown sign-in error: %s",
            exc,
            level=logging.WARNING,
            error_code=str(AuthErrorCode.UNKNOWN_ERROR),
        )
        return SignInResult(
            error_code=AuthErrorCode.UNKNOWN_ERROR,
            error_message=GENERIC_LOGIN_FAILURE,
        )
