"""
Profile Loader.

Resolves the application profile for an authenticated identity,
creating it on first login.

Provisioning strategy:
    - Look the profile up by identity id.  A missing row is not an
      error; it means this is the user's first login.
    - New profiles get a display name derived from the email and an
      ``internal_role`` of ``admin`` only when the email contains
      "admin".
    - If the insert fails because a concurrent login created the row
      first, re-read it instead of failing.
    - Seed bootstrap records on every call (idempotent, best-effort).
    - Any other failure raises ``ProfileLoadError``; the caller must then
      undo the identity sign-in.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from session_core.logger import StructuredLogger
from session_core.models.enums import InternalRole
from session_core.models.user import UserProfile
from session_core.repositories.profile_repository import ProfileRepository
from session_core.services.base_service import BaseService
from session_core.services.bootstrap_seeder import BootstrapSeeder
from session_core.utils.audit import log_audit_event
from session_core.utils.general import email_local_part, normalize_email


class ProfileLoadError(Exception):
    """Raised when a profile cannot be fetched or created."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


def derive_display_name(email: str, overrides: Optional[Mapping[str, str]] = None) -> str:
    """Default display name for a new profile.

    An explicit override for the (normalised) email wins; otherwise the
    email's local part with its first character upper-cased, or
    ``"User"`` when there is no local part.
    """
    if overrides:
        override = overrides.get(normalize_email(email or ""))
        if override:
            return override
    local = email_local_part(email)
    if not local:
        return "User"
    return local[0].upper() + local[1:]


def derive_internal_role(email: str) -> InternalRole:
    """``admin`` when the email contains "admin" (any case), else ``user``."""
    return InternalRole.ADMIN if "admin" in (email or "").lower() else InternalRole.USER


class ProfileLoader(BaseService):
    """Fetches or provisions ``UserProfile`` rows.

    Parameters
    ----------
    profiles:
        Profile repository (``users`` table).
    seeder:
        Seeds first-login records after the profile is resolved.
    logger:
        Structured logger.
    default_job_title:
        Free-text ``role`` given to newly created profiles.
    display_name_overrides:
        Optional email -> display name map consulted on first login.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        seeder: BootstrapSeeder,
        logger: StructuredLogger,
        default_job_title: str = "Senior Loan Officer",
        display_name_overrides: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(logger)
        self._profiles = profiles
        self._seeder = seeder
        self._default_job_title = default_job_title
        self._display_name_overrides: dict[str, str] = {
            normalize_email(key): value
            for key, value in (display_name_overrides or {}).items()
        }

    async def load_profile(
        self,
        identity_id: str,
        email: str,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> UserProfile:
        """Return the profile for *identity_id*, creating it on first login.

        *is_current* reports whether the caller still wants the result;
        once it returns ``False`` bootstrap seeding is skipped.

        Raises:
            ProfileLoadError: If the profile cannot be read or created.
        """
        self._logger.info("Loading profile for %s.", email or identity_id)
        try:
            profile = await self._profiles.get_by_id(identity_id)
            if profile is None:
                profile = await self._provision_new_profile(identity_id, email)
        except ProfileLoadError:
            raise
        except Exception as exc:
            self._logger.error(
                "Profile load failed for %s: %s",
                identity_id,
                exc,
                exc_info=True,
            )
            raise ProfileLoadError(
                f"Could not load profile for {identity_id}: {exc}",
                original_error=exc,
            ) from exc

        if is_current is not None and not is_current():
            self._logger.debug("Caller gave up on %s; skipping bootstrap seeding.", identity_id)
            return profile
        await self._seeder.ensure_user_data(profile.id, is_current=is_current)
        return profile

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    async def _provision_new_profile(self, identity_id: str, email: str) -> UserProfile:
        """Insert the default profile, re-reading it if a concurrent login won."""
        now = datetime.now(timezone.utc)
        new_profile = UserProfile(
            id=identity_id,
            email=email,
            name=derive_display_name(email, self._display_name_overrides),
            role=self._default_job_title,
            internal_role=derive_internal_role(email),
            created_at=now,
            updated_at=now,
        )
        self._logger.info(
            "First login for %s; creating profile %r (%s).",
            email,
            new_profile.name,
            new_profile.internal_role,
        )

        try:
            created = await self._profiles.insert(new_profile)
        except Exception as exc:
            self._logger.warning(
                "Profile insert for %s failed (%s); re-reading in case a "
                "concurrent login created it.",
                identity_id,
                exc,
            )
            existing = await self._profiles.get_by_id(identity_id)
            if existing is None:
                raise ProfileLoadError(
                    f"Failed to create profile for {identity_id}",
                    original_error=exc,
                ) from exc
            return existing

        log_audit_event(
            logger=self._logger,
            action="PROFILE_CREATE",
            entity_type="UserProfile",
            entity_id=identity_id,
            user_id=identity_id,
            details={
                "email": email,
                "name": created.name,
                "internal_role": str(created.internal_role),
            },
        )
        return created
