"""
Structured Audit Logging Utility.

Profile creation and first-login seeding are state changes in the shared
backend; each one is logged as a validated, single-line JSON audit event.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from session_core.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Flat scalars only; nested structures belong in their own event.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Validate and emit an audit event, returning it for callers that keep a copy.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"PROFILE_CREATE"``, ``"SEED_TASKS"``).
        entity_type: Type of entity affected (e.g. ``"UserProfile"``).
        entity_id: Primary key of the affected entity.
        user_id: ID of the user the change was made for.
        details: Optional additional context.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info(
        "AUDIT: %s",
        json.dumps(event.model_dump(), default=str),
        extra={"event": "AUDIT", "action": action},
    )
    return event
