"""
Authentication Pipeline Models.

Pydantic models for the contracts between the identity provider
adapter, the session state machine and the rest of the dashboard.
Every identity call returns a structured result rather than leaking raw
provider exceptions to callers.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel

from session_core.models.enums import SessionPhase
from session_core.models.user import UserProfile


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Categories of sign-in failure reported by ``IdentityProviderClient``."""

    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    USER_BANNED = "user_banned"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    NO_USER_DATA = "no_user_data"
    UNKNOWN_ERROR = "unknown_error"


GENERIC_LOGIN_FAILURE: str = "Invalid email or password."

# Substring of the provider error -> (code, message shown on the login form).
SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (AuthErrorCode.INVALID_CREDENTIALS, GENERIC_LOGIN_FAILURE),
    "invalid login credentials": (AuthErrorCode.INVALID_CREDENTIALS, GENERIC_LOGIN_FAILURE),
    "invalid_grant": (AuthErrorCode.INVALID_CREDENTIALS, GENERIC_LOGIN_FAILURE),
    "email not confirmed": (
        AuthErrorCode.EMAIL_NOT_CONFIRMED,
        "Please confirm your email address before signing in.",
    ),
    "user_banned": (
        AuthErrorCode.USER_BANNED,
        "Your account has been deactivated. Contact your administrator.",
    ),
    "rate limit": (
        AuthErrorCode.RATE_LIMITED,
        "Too many sign-in attempts. Please wait and try again.",
    ),
}


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class IdentitySession(BaseModel):
    """The subset of a provider session the core reads.

    Attributes
    ----------
    user_id:
        Subject id; also the primary key of the profile row.
    email:
        Email claim.  May be empty for phone-only identities.
    """

    user_id: str
    email: str = ""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    model_config = {"frozen": True}


class SignInResult(BaseModel):
    """Outcome of a password sign-in.  Exactly one of ``session`` / ``error_code`` is set."""

    session: Optional[IdentitySession] = None
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.session is not None and self.error_code is None


# ---------------------------------------------------------------------------
# Observable state
# ---------------------------------------------------------------------------

class AuthState(BaseModel):
    """Immutable snapshot of the observable auth state.

    A new snapshot replaces the old one on every transition, so consumers
    can compare snapshots by identity to detect change.
    """

    user: Optional[UserProfile] = None
    is_loading: bool = True
    show_session_warning: bool = False
    phase: SessionPhase = SessionPhase.UNINITIALIZED

    model_config = {"frozen": True}

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None
