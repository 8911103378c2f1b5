"""Shared fixtures and in-memory fakes for the session core tests."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import pytest

from session_core.logger import StructuredLogger
from session_core.models.auth_models import (
    AuthErrorCode,
    GENERIC_LOGIN_FAILURE,
    IdentitySession,
    SignInResult,
)
from session_core.models.bootstrap import BadgeAssignment, DefaultTask, PerformanceRecord
from session_core.models.enums import AuthEventType
from session_core.models.user import UserProfile
from session_core.services.bootstrap_seeder import BootstrapSeeder
from session_core.services.profile_loader import ProfileLoader
from session_core.services.session_state import SessionStateMachine

FIXED_NOW = datetime(2026, 10, 19, 9, 30).astimezone()
STARTER_BADGE_ID = "badge-rookie"


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class FakeHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: callbacks only run inside ``advance()``."""

    def __init__(self) -> None:
        self.now: float = 0.0
        self._handles: list[FakeHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self._handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.fired = True
            handle.callback()
        self.now = target


# ---------------------------------------------------------------------------
# Identity provider
# ---------------------------------------------------------------------------

class FakeIdentityClient:
    """In-memory identity provider with optional per-email sign-in gates."""

    def __init__(self) -> None:
        self.accounts: dict[str, tuple[str, str]] = {}
        self.session: Optional[IdentitySession] = None
        self.get_session_error: Optional[Exception] = None
        self.sign_in_error: Optional[Exception] = None
        self.sign_out_error: Optional[str] = None
        self.restore_error: Optional[str] = None
        self.sign_in_gates: dict[str, asyncio.Event] = {}
        self.sign_in_calls: list[str] = []
        self.sign_out_calls: int = 0
        self.restore_calls: int = 0
        self._callbacks: list[Callable[[AuthEventType], None]] = []

    def add_account(self, email: str, password: str, user_id: str) -> None:
        self.accounts[email] = (password, user_id)

    def gate(self, email: str) -> asyncio.Event:
        event = asyncio.Event()
        self.sign_in_gates[email] = event
        return event

    async def get_session(self) -> Optional[IdentitySession]:
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    async def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        self.sign_in_calls.append(email)
        gate = self.sign_in_gates.get(email)
        if gate is not None:
            await gate.wait()
        if self.sign_in_error is not None:
            raise self.sign_in_error
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            return SignInResult(
                error_code=AuthErrorCode.INVALID_CREDENTIALS,
                error_message=GENERIC_LOGIN_FAILURE,
            )
        self.session = IdentitySession(user_id=account[1], email=email)
        return SignInResult(session=self.session)

    async def sign_out(self) -> Optional[str]:
        self.sign_out_calls += 1
        self.session = None
        return self.sign_out_error

    async def restore_session(self, session: IdentitySession) -> Optional[str]:
        self.restore_calls += 1
        if self.restore_error is not None:
            return self.restore_error
        self.session = session
        return None

    def on_auth_state_change(self, callback: Callable[[AuthEventType], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def emit(self, event: AuthEventType) -> None:
        for callback in list(self._callbacks):
            callback(event)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class InMemoryProfileRepository:
    def __init__(self) -> None:
        self.rows: dict[str, UserProfile] = {}
        self.get_error: Optional[Exception] = None
        self.insert_error: Optional[Exception] = None
        self.insert_calls: int = 0
        self.get_gate: Optional[asyncio.Event] = None

    async def get_by_id(self, user_id: str) -> Optional[UserProfile]:
        if self.get_gate is not None:
            await self.get_gate.wait()
        if self.get_error is not None:
            raise self.get_error
        return self.rows.get(user_id)

    async def insert(self, profile: UserProfile) -> UserProfile:
        self.insert_calls += 1
        if self.insert_error is not None:
            raise self.insert_error
        if profile.id in self.rows:
            raise ValueError("duplicate key value violates unique constraint \"users_pkey\"")
        self.rows[profile.id] = profile
        return profile


class InMemoryBootstrapRepository:
    def __init__(self) -> None:
        self.performance: list[PerformanceRecord] = []
        self.catalogue: dict[str, str] = {"Rookie of the Year": STARTER_BADGE_ID}
        self.assignments: list[BadgeAssignment] = []
        self.tasks: list[DefaultTask] = []
        self.failing: set[str] = set()

    def _maybe_fail(self, name: str) -> None:
        if name in self.failing:
            raise ConnectionError(f"{name} unavailable")

    async def has_performance_record(self, user_id: str, month: int, year: int) -> bool:
        self._maybe_fail("performance")
        return any(
            r.user_id == user_id and r.month == month and r.year == year
            for r in self.performance
        )

    async def insert_performance_record(self, record: PerformanceRecord) -> None:
        self._maybe_fail("performance")
        self.performance.append(record)

    async def has_badge_assignment(self, user_id: str) -> bool:
        self._maybe_fail("badges")
        return any(a.user_id == user_id for a in self.assignments)

    async def find_badge_id(self, name: str) -> Optional[str]:
        self._maybe_fail("badges")
        return self.catalogue.get(name)

    async def insert_badge_assignment(self, assignment: BadgeAssignment) -> None:
        self._maybe_fail("badges")
        self.assignments.append(assignment)

    async def has_tasks(self, user_id: str) -> bool:
        self._maybe_fail("tasks")
        return any(t.user_id == user_id for t in self.tasks)

    async def insert_tasks(self, tasks: list[DefaultTask]) -> None:
        self._maybe_fail("tasks")
        self.tasks.extend(tasks)


class FakeSettings:
    def __init__(self, minutes: int = 30) -> None:
        self.minutes = minutes

    async def get_auto_logout_timeout_minutes(self) -> int:
        return self.minutes


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="tests.session_core", stream=io.StringIO(), log_file="")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def profiles() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def bootstrap() -> InMemoryBootstrapRepository:
    return InMemoryBootstrapRepository()


@pytest.fixture
def seeder(bootstrap: InMemoryBootstrapRepository, logger: StructuredLogger) -> BootstrapSeeder:
    return BootstrapSeeder(repo=bootstrap, logger=logger, clock=lambda: FIXED_NOW)


@pytest.fixture
def loader(
    profiles: InMemoryProfileRepository,
    seeder: BootstrapSeeder,
    logger: StructuredLogger,
) -> ProfileLoader:
    return ProfileLoader(profiles=profiles, seeder=seeder, logger=logger)


@dataclass
class Harness:
    machine: SessionStateMachine
    identity: FakeIdentityClient
    profiles: InMemoryProfileRepository
    bootstrap: InMemoryBootstrapRepository
    settings: FakeSettings
    scheduler: FakeScheduler
    snapshots: list = field(default_factory=list)


@pytest.fixture
def harness(
    loader: ProfileLoader,
    profiles: InMemoryProfileRepository,
    bootstrap: InMemoryBootstrapRepository,
    scheduler: FakeScheduler,
    logger: StructuredLogger,
) -> Harness:
    identity = FakeIdentityClient()
    settings = FakeSettings()
    machine = SessionStateMachine(
        identity=identity,
        profile_loader=loader,
        settings=settings,
        logger=logger,
        scheduler=scheduler,
    )
    h = Harness(
        machine=machine,
        identity=identity,
        profiles=profiles,
        bootstrap=bootstrap,
        settings=settings,
        scheduler=scheduler,
    )
    machine.subscribe(h.snapshots.append)
    return h


async def drain() -> None:
    """Let spawned background tasks run to completion."""
    for _ in range(5):
        await asyncio.sleep(0)
