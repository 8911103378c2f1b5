from __future__ import annotations

"""
Data Models Package.

Re-exports the Pydantic models for short imports:
    from session_core.models import UserProfile, AuthState, InternalRole
"""

from session_core.models.enums import (
    AccessDecision,
    ActivityKind,
    AuthEventType,
    BootstrapKind,
    InternalRole,
    RecruiterType,
    SessionPhase,
)
from session_core.models.user import UserProfile
from session_core.models.bootstrap import (
    BadgeAssignment,
    DefaultTask,
    PerformanceRecord,
    build_default_tasks,
)
from session_core.models.auth_models import (
    AuthErrorCode,
    AuthState,
    IdentitySession,
    SignInResult,
)

__all__ = [
    "AccessDecision",
    "ActivityKind",
    "AuthErrorCode",
    "AuthEventType",
    "AuthState",
    "BadgeAssignment",
    "BootstrapKind",
    "DefaultTask",
    "IdentitySession",
    "InternalRole",
    "PerformanceRecord",
    "RecruiterType",
    "SessionPhase",
    "SignInResult",
    "UserProfile",
    "build_default_tasks",
]
