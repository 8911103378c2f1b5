"""
Protected-view guard.

Decides what a protected screen should do with the current auth state:
wait while the state machine is loading, send the visitor to the login
screen when nobody is signed in, refuse non-admins on admin screens, or
render.
"""

from __future__ import annotations

from session_core.models.auth_models import AuthState
from session_core.models.enums import AccessDecision


def resolve_access(state: AuthState, require_admin: bool = False) -> AccessDecision:
    """Map *state* to an ``AccessDecision`` for a protected view."""
    if state.is_loading:
        return AccessDecision.LOADING
    if state.user is None:
        return AccessDecision.REDIRECT_LOGIN
    if require_admin and not state.user.is_admin:
        return AccessDecision.DENIED
    return AccessDecision.ALLOW
