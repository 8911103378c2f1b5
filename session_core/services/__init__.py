"""
Session Services Package.

The ``create_services()`` factory wires repositories and services
together and returns a typed container, so the shell consumes the
session state machine without knowing the dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from session_core.config import AppConfig
from session_core.database import DatabaseManager
from session_core.logger import get_logger
from session_core.repositories.bootstrap_repository import BootstrapRepository
from session_core.repositories.profile_repository import ProfileRepository
from session_core.services.app_settings_service import AppSettingsService
from session_core.services.bootstrap_seeder import BootstrapSeeder
from session_core.services.identity_client import IdentityProviderClient
from session_core.services.profile_loader import ProfileLoader
from session_core.services.session_state import SessionStateMachine
from session_core.services.session_timer import Scheduler


class ServiceContainer(TypedDict):
    """Typed container for the session core services."""

    profile_repository: ProfileRepository
    bootstrap_repository: BootstrapRepository
    app_settings_service: AppSettingsService
    identity_client: IdentityProviderClient
    bootstrap_seeder: BootstrapSeeder
    profile_loader: ProfileLoader
    session_state: SessionStateMachine


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    scheduler: Optional[Scheduler] = None,
) -> ServiceContainer:
    """Wire all repositories and services together.

    Args:
        db: Connected ``DatabaseManager``.
        config: Application configuration.
        scheduler: Optional timer scheduler (defaults to the asyncio loop).

    Returns:
        A ``ServiceContainer`` with every service instantiated.
    """
    repo_logger = get_logger("session_core.repositories")
    profile_repository = ProfileRepository(db, repo_logger)
    bootstrap_repository = BootstrapRepository(db, repo_logger)

    app_settings_service = AppSettingsService(
        db=db,
        logger=get_logger("session_core.settings"),
        default_auto_logout_minutes=config.DEFAULT_AUTO_LOGOUT_MINUTES,
    )
    identity_client = IdentityProviderClient(
        db=db,
        logger=get_logger("session_core.identity"),
    )
    bootstrap_seeder = BootstrapSeeder(
        repo=bootstrap_repository,
        logger=get_logger("session_core.bootstrap"),
        starter_badge_name=config.STARTER_BADGE_NAME,
    )
    profile_loader = ProfileLoader(
        profiles=profile_repository,
        seeder=bootstrap_seeder,
        logger=get_logger("session_core.profiles"),
        default_job_title=config.DEFAULT_JOB_TITLE,
        display_name_overrides=config.DISPLAY_NAME_OVERRIDES,
    )
    session_state = SessionStateMachine(
        identity=identity_client,
        profile_loader=profile_loader,
        settings=app_settings_service,
        logger=get_logger("session_core.session"),
        scheduler=scheduler,
    )

    return ServiceContainer(
        profile_repository=profile_repository,
        bootstrap_repository=bootstrap_repository,
        app_settings_service=app_settings_service,
        identity_client=identity_client,
        bootstrap_seeder=bootstrap_seeder,
        profile_loader=profile_loader,
        session_state=session_state,
    )
