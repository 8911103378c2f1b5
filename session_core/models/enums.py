"""
Shared Enumerations for the session core.

StrEnum values compare equal to their string equivalents, so rows read
straight from the backend (``internal_role = 'admin'``) validate without
conversion.
"""

from __future__ import annotations
from enum import StrEnum


class InternalRole(StrEnum):
    """Coarse access level stored on the profile row.

    Distinct from the free-text job title (``UserProfile.role``).  Only
    ``ADMIN`` is consulted by the session core (admin console guard).
    """

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"


class RecruiterType(StrEnum):
    """Whether a recruiter linkage points at a person or a company."""

    USER = "user"
    COMPANY = "company"


class SessionPhase(StrEnum):
    """Externally observable phase of the session state machine.

    ``INITIALIZING`` is entered at startup and on every ``login()`` call
    and left exactly once per call.  ``AUTHENTICATED_ACTIVE`` and
    ``AUTHENTICATED_WARNING`` alternate under the inactivity timers.
    """

    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    AUTHENTICATED_ACTIVE = "AUTHENTICATED_ACTIVE"
    AUTHENTICATED_WARNING = "AUTHENTICATED_WARNING"
    UNAUTHENTICATED = "UNAUTHENTICATED"


class ActivityKind(StrEnum):
    """Interaction classes that count as user presence."""

    POINTER_DOWN = "mousedown"
    POINTER_MOVE = "mousemove"
    KEY_PRESS = "keypress"
    SCROLL = "scroll"
    TOUCH_START = "touchstart"
    CLICK = "click"


class AuthEventType(StrEnum):
    """Out-of-band events delivered by the identity provider."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"


class AccessDecision(StrEnum):
    """Outcome of guarding a protected view against the current auth state."""

    LOADING = "LOADING"
    REDIRECT_LOGIN = "REDIRECT_LOGIN"
    DENIED = "DENIED"
    ALLOW = "ALLOW"


class BootstrapKind(StrEnum):
    """First-login records seeded for every new user."""

    PERFORMANCE = "performance"
    STARTER_BADGE = "starter_badge"
    DEFAULT_TASKS = "default_tasks"
