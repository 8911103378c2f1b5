"""
Session Core Console Shell.

Wires the dependency graph via constructor injection, restores any
existing session, and runs a small interactive loop on top of the
session state machine.  Every line typed counts as a key press;
``extend``, ``logout``, ``status`` and ``quit`` are commands.

Usage::

    python main.py
"""

from __future__ import annotations

import asyncio
import getpass
import sys

from session_core.config import get_config
from session_core.database import DatabaseManager
from session_core.logger import StructuredLogger, get_logger
from session_core.models.auth_models import AuthState
from session_core.models.enums import AccessDecision, ActivityKind
from session_core.services import create_services
from session_core.services.route_guard import resolve_access
from session_core.services.session_state import SessionStateMachine
from session_core.utils.general import format_countdown

_MAX_LOGIN_ATTEMPTS: int = 3


def _render_state(machine: SessionStateMachine, state: AuthState) -> None:
    if state.show_session_warning:
        remaining = format_countdown(machine.timer.seconds_until_expiry())
        print(
            f"\n*** Session expiring soon: you will be logged out in {remaining}. "
            "Type 'extend' to stay signed in or 'logout' to leave now. ***"
        )
    elif not state.is_loading and state.user is None:
        print("\nYou are signed out.")


async def _prompt(text: str, secret: bool = False) -> str:
    loop = asyncio.get_running_loop()
    reader = getpass.getpass if secret else input
    return await loop.run_in_executor(None, reader, text)


async def _sign_in(machine: SessionStateMachine) -> bool:
    for _ in range(_MAX_LOGIN_ATTEMPTS):
        email = await _prompt("Email: ")
        password = await _prompt("Password: ", secret=True)
        if await machine.login(email, password):
            user = machine.user
            if user is not None:
                print(f"Welcome, {user.name} ({user.role}).")
            return True
        print("Invalid credentials. Please try again.")
    return False


async def _command_loop(machine: SessionStateMachine) -> None:
    while True:
        if resolve_access(machine.state) == AccessDecision.REDIRECT_LOGIN:
            if not await _sign_in(machine):
                return

        line = (await _prompt("> ")).strip().lower()
        if resolve_access(machine.state) == AccessDecision.REDIRECT_LOGIN:
            continue

        if line == "quit":
            return
        if line == "logout":
            await machine.logout()
        elif line == "extend":
            machine.extend_session()
        elif line == "status":
            user = machine.user
            remaining = machine.timer.seconds_until_expiry()
            print(
                f"Signed in as {user.email if user else '-'}; phase={machine.phase}; "
                f"timeout={machine.timer.timeout_minutes} min"
                + (f"; expires in {format_countdown(remaining)}" if remaining is not None else "")
            )
        else:
            machine.handle_activity(ActivityKind.KEY_PRESS)


async def run(logger: StructuredLogger) -> None:
    """Wire dependencies, restore the session, and run the shell."""
    config = get_config()

    db = await DatabaseManager.connect(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="session_core.database"),
    )
    services = create_services(db=db, config=config)
    machine = services["session_state"]
    machine.subscribe(lambda state: _render_state(machine, state))

    await machine.initialize()
    try:
        await _command_loop(machine)
    finally:
        machine.teardown()
        db.close()
        logger.info("Session shell shut down.")


def main() -> None:
    logger = get_logger("session_core.main")
    logger.info("Starting session shell...")
    try:
        asyncio.run(run(logger))
    except (KeyboardInterrupt, EOFError):
        pass
    except Exception as exc:
        logger.critical("Fatal error: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
