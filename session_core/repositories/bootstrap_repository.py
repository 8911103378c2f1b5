"""
Bootstrap Repository.

Existence checks and inserts for the first-login records.  Each record
kind is a check-then-insert pair; the seeder calls the check first and
only inserts when it comes back empty.
"""

from __future__ import annotations

from typing import Optional

from session_core.models.bootstrap import BadgeAssignment, DefaultTask, PerformanceRecord
from session_core.repositories.base_repository import BaseRepository


class BootstrapRepository(BaseRepository):
    """Data access for ``user_performance``, ``badges``, ``user_badges`` and ``tasks``."""

    PERFORMANCE_TABLE = "user_performance"
    BADGES_TABLE = "badges"
    USER_BADGES_TABLE = "user_badges"
    TASKS_TABLE = "tasks"

    # -- Performance ---------------------------------------------------

    async def has_performance_record(self, user_id: str, month: int, year: int) -> bool:
        response = await (
            self.supabase.table(self.PERFORMANCE_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .eq("month", month)
            .eq("year", year)
            .limit(1)
            .execute()
        )
        return bool(self._rows(response))

    async def insert_performance_record(self, record: PerformanceRecord) -> None:
        await self.supabase.table(self.PERFORMANCE_TABLE).insert(record.to_record()).execute()

    # -- Badges --------------------------------------------------------

    async def has_badge_assignment(self, user_id: str) -> bool:
        response = await (
            self.supabase.table(self.USER_BADGES_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return bool(self._rows(response))

    async def find_badge_id(self, name: str) -> Optional[str]:
        """Return the id of the catalogue badge called *name*, if any."""
        response = await (
            self.supabase.table(self.BADGES_TABLE)
            .select("id")
            .eq("name", name)
            .limit(1)
            .execute()
        )
        rows = self._rows(response)
        return str(rows[0]["id"]) if rows else None

    async def insert_badge_assignment(self, assignment: BadgeAssignment) -> None:
        await self.supabase.table(self.USER_BADGES_TABLE).insert(assignment.to_record()).execute()

    # -- Tasks ---------------------------------------------------------

    async def has_tasks(self, user_id: str) -> bool:
        response = await (
            self.supabase.table(self.TASKS_TABLE)
            .select("id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return bool(self._rows(response))

    async def insert_tasks(self, tasks: list[DefaultTask]) -> None:
        if not tasks:
            return
        await (
            self.supabase.table(self.TASKS_TABLE)
            .insert([task.to_record() for task in tasks])
            .execute()
        )
