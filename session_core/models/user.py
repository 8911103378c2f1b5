"""
User Profile Model.

Application-level view of a user, keyed by the identity provider's
subject id.  Field names match the ``users`` table columns so rows
validate directly (``UserProfile(**row)``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from session_core.models.enums import InternalRole, RecruiterType


class UserProfile(BaseModel):
    """Represents a dashboard user.

    ``role`` is the free-text job title shown on screen; ``internal_role``
    is the access level.  Rows written before ``internal_role`` existed
    carry ``NULL`` there and are read back as ``user``.
    """

    id: str  # identity subject id
    name: str
    email: str
    role: str
    internal_role: InternalRole = InternalRole.USER
    avatar: Optional[str] = None
    nmls_number: Optional[str] = None
    client_facing_title: Optional[str] = None
    recruiter_id: Optional[str] = None
    recruiter_type: Optional[RecruiterType] = None
    recruiter_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("internal_role", mode="before")
    @classmethod
    def _default_internal_role(cls, value: Any) -> Any:
        return InternalRole.USER if value in (None, "") else value

    @property
    def is_admin(self) -> bool:
        return self.internal_role == InternalRole.ADMIN

    def to_record(self) -> dict[str, Any]:
        """Serialise for an insert into the ``users`` table."""
        return self.model_dump(mode="json")
