"""
First-Login Bootstrap Seeder.

Guarantees every user has non-empty dependent data: a performance record
for the current month, the starter badge and the onboarding task set.

Seeding strategy:
    - Each record kind is checked and inserted independently; a failure
      in one kind does not stop the others.
    - Check before insert, never insert blindly, so repeated logins do
      not duplicate rows.
    - Errors are logged and swallowed.  A partially seeded user is
      completed on the next login.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from session_core.logger import StructuredLogger
from session_core.models.bootstrap import (
    BadgeAssignment,
    PerformanceRecord,
    build_default_tasks,
)
from session_core.models.enums import BootstrapKind
from session_core.repositories.bootstrap_repository import BootstrapRepository
from session_core.services.base_service import BaseService
from session_core.utils.audit import log_audit_event

Clock = Callable[[], datetime]


def _local_now() -> datetime:
    return datetime.now().astimezone()


class BootstrapSeeder(BaseService):
    """Creates the first-login records for a user when they are missing.

    Parameters
    ----------
    repo:
        Bootstrap record repository.
    logger:
        Structured logger.
    starter_badge_name:
        Catalogue name of the badge every new user receives.
    clock:
        Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        repo: BootstrapRepository,
        logger: StructuredLogger,
        starter_badge_name: str = "Rookie of the Year",
        clock: Clock = _local_now,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._starter_badge_name = starter_badge_name
        self._clock = clock

    async def ensure_user_data(
        self,
        user_id: str,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> list[BootstrapKind]:
        """Seed whatever is missing for *user_id*.  Never raises.

        Returns the kinds that were created by this call (empty when the
        user was already fully seeded).  Remaining steps are skipped as
        soon as *is_current* returns ``False``.
        """
        self._logger.debug("Ensuring bootstrap records for %s.", user_id)
        now = self._clock()

        steps: tuple[tuple[BootstrapKind, Callable[[], Awaitable[bool]]], ...] = (
            (BootstrapKind.PERFORMANCE, lambda: self._ensure_performance(user_id, now)),
            (BootstrapKind.STARTER_BADGE, lambda: self._ensure_starter_badge(user_id, now)),
            (BootstrapKind.DEFAULT_TASKS, lambda: self._ensure_default_tasks(user_id, now)),
        )

        created: list[BootstrapKind] = []
        for kind, step in steps:
            if is_current is not None and not is_current():
                self._logger.debug("Seeding for %s no longer wanted; stopping before %s.", user_id, kind)
                break
            try:
                if await step():
                    created.append(kind)
            except Exception as exc:
                self._log_event(
                    "BOOTSTRAP_FAILED",
                    "Could not seed %s for %s: %s",
                    kind,
                    user_id,
                    exc,
                    level=logging.ERROR,
                    user_id=user_id,
                    kind=str(kind),
                )

        if created:
            log_audit_event(
                logger=self._logger,
                action="BOOTSTRAP_SEED",
                entity_type="UserProfile",
                entity_id=user_id,
                user_id=user_id,
                details={"created": ",".join(str(kind) for kind in created)},
            )
        return created

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _ensure_performance(self, user_id: str, now: datetime) -> bool:
        if await self._repo.has_performance_record(user_id, now.month, now.year):
            return False
        self._logger.info("Creating performance record for %s (%d/%d).", user_id, now.month, now.year)
        await self._repo.insert_performance_record(
            PerformanceRecord.empty_for(user_id, now.date())
        )
        return True

    async def _ensure_starter_badge(self, user_id: str, now: datetime) -> bool:
        if await self._repo.has_badge_assignment(user_id):
            return False
        badge_id = await self._repo.find_badge_id(self._starter_badge_name)
        if badge_id is None:
            self._logger.warning(
                "Starter badge %r is not in the catalogue; skipping badge seed for %s.",
                self._starter_badge_name,
                user_id,
            )
            return False
        self._logger.info("Assigning starter badge to %s.", user_id)
        await self._repo.insert_badge_assignment(
            BadgeAssignment(user_id=user_id, badge_id=badge_id, date_obtained=now)
        )
        return True

    async def _ensure_default_tasks(self, user_id: str, now: datetime) -> bool:
        if await self._repo.has_tasks(user_id):
            return False
        self._logger.info("Creating default tasks for %s.", user_id)
        await self._repo.insert_tasks(build_default_tasks(user_id, now.date()))
        return True
