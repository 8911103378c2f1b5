"""
Profile Repository.

Reads and creates rows of the ``users`` table.  Errors propagate to the
caller: "not found" is reported as ``None``, anything else is an I/O
failure the Profile Loader must see.
"""

from __future__ import annotations

from typing import Optional

from session_core.models.user import UserProfile
from session_core.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository):
    """Data access layer for ``UserProfile`` rows.

    **No ``delete()`` method.**  The session core never removes profiles;
    deactivation is handled by the admin screens.
    """

    TABLE = "users"

    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        """Fetch a profile by identity id, or ``None`` when no row exists."""
        response = await (
            self.supabase.table(self.TABLE)
            .select("*")
            .eq("id", user_id)
            .maybe_single()
            .execute()
        )
        row = self._single_row(response)
        return UserProfile(**row) if row else None

    async def insert(self, profile: UserProfile) -> UserProfile:
        """Insert *profile* and return the stored row.

        Raises whatever the backend raises, including a unique-key
        violation when another session created the row first.
        """
        response = await (
            self.supabase.table(self.TABLE)
            .insert(profile.to_record())
            .execute()
        )
        rows = self._rows(response)
        if rows:
            return UserProfile(**rows[0])
        return profile
