"""Shared utility functions and models for the session core.

Convenience re-exports so consumers can ``from session_core.utils import
format_countdown`` while full module imports remain supported.
"""

from session_core.utils.audit import AuditEvent, log_audit_event
from session_core.utils.general import email_local_part, format_countdown, normalize_email

__all__ = [
    "AuditEvent",
    "email_local_part",
    "format_countdown",
    "log_audit_event",
    "normalize_email",
]
