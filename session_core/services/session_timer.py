"""
Session Timer Engine.

Owns the two scheduled callbacks behind inactivity logout:

- **warning** fires ``max(T - 5, 1)`` minutes after the last arm and
  raises the "session expiring" flag;
- **expiry** fires 5 minutes after the warning and asks the state
  machine to log out.

Scheduling goes through a small ``Scheduler`` protocol.  Production code
uses :class:`AsyncioScheduler` (``loop.call_later``), so cancellation
removes the callback from the event loop; tests drive a manual clock.

Visibility policy
-----------------
Hiding the page only stops activity from re-arming the timers; the
countdown keeps running.  Showing the page again while a session is
armed re-arms from that moment.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol

from session_core.logger import StructuredLogger
from session_core.services.base_service import BaseService

WARNING_LEAD_MINUTES: int = 5
MIN_WARNING_DELAY_MINUTES: int = 1
DEFAULT_TIMEOUT_MINUTES: int = 30


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Minimal event-loop scheduling surface used by the timer engine."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def time(self) -> float: ...


class AsyncioScheduler:
    """``Scheduler`` backed by the running asyncio event loop.

    The loop is looked up on each call so one instance can be created
    before the loop starts (at wiring time) and used inside it.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._get_loop().call_later(delay, callback)

    def time(self) -> float:
        try:
            return self._get_loop().time()
        except RuntimeError:
            return time.monotonic()


def warning_delay_minutes(timeout_minutes: int) -> int:
    """Minutes from arm to warning: ``T - 5``, floored at one minute."""
    return max(timeout_minutes - WARNING_LEAD_MINUTES, MIN_WARNING_DELAY_MINUTES)


class SessionTimerEngine(BaseService):
    """Warning/expiry scheduling for one authenticated session.

    Parameters
    ----------
    scheduler:
        Event-loop scheduling surface.
    on_warning:
        Called when the warning timer fires.
    on_expire:
        Called when the expiry timer fires without an intervening arm.
    logger:
        Structured logger.
    timeout_minutes:
        Initial auto-logout timeout ``T``.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_warning: Callable[[], None],
        on_expire: Callable[[], None],
        logger: StructuredLogger,
        timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
    ) -> None:
        super().__init__(logger)
        self._scheduler = scheduler
        self._on_warning = on_warning
        self._on_expire = on_expire
        self._timeout_minutes: int = timeout_minutes

        self._warning_handle: Optional[TimerHandle] = None
        self._expiry_handle: Optional[TimerHandle] = None
        self._warning_deadline: Optional[float] = None
        self._expiry_deadline: Optional[float] = None
        self._warning_active: bool = False
        self._engaged: bool = False
        self._foreground: bool = True

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def timeout_minutes(self) -> int:
        return self._timeout_minutes

    @property
    def warning_delay_seconds(self) -> float:
        return warning_delay_minutes(self._timeout_minutes) * 60.0

    @property
    def is_armed(self) -> bool:
        """``True`` between an ``arm()`` and the next ``cancel()`` or expiry."""
        return self._engaged

    @property
    def warning_active(self) -> bool:
        return self._warning_active

    @property
    def is_foreground(self) -> bool:
        return self._foreground

    @property
    def next_warning_at(self) -> Optional[float]:
        """Scheduler time at which the pending warning fires, if any."""
        return self._warning_deadline

    @property
    def expires_at(self) -> Optional[float]:
        """Scheduler time at which the pending expiry fires, if any."""
        return self._expiry_deadline

    def seconds_until_expiry(self) -> Optional[float]:
        """Remaining seconds of the warning countdown, ``None`` when no warning is pending."""
        if self._expiry_deadline is None:
            return None
        return max(self._expiry_deadline - self._scheduler.time(), 0.0)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_timeout_minutes(self, minutes: int) -> bool:
        """Change ``T``.  Returns ``True`` when the value actually changed.

        Non-positive values are rejected and leave ``T`` unchanged.  Does
        not reschedule by itself; the caller decides whether to re-arm.
        """
        if minutes <= 0:
            self._logger.warning("Ignoring non-positive auto-logout timeout %d.", minutes)
            return False
        if minutes == self._timeout_minutes:
            return False
        self._timeout_minutes = minutes
        self._logger.info("Auto-logout timeout set to %d minutes.", minutes)
        return True

    # ------------------------------------------------------------------
    # Arm / cancel
    # ------------------------------------------------------------------

    def arm(self) -> None:
        """Cancel any pending callbacks and schedule a fresh warning from now."""
        self._clear()
        delay = self.warning_delay_seconds
        self._engaged = True
        self._warning_deadline = self._scheduler.time() + delay
        self._warning_handle = self._scheduler.call_later(delay, self._fire_warning)
        self._logger.debug("Inactivity timers armed; warning in %.0f s.", delay)

    def cancel(self) -> None:
        """Clear both callbacks and the warning flag."""
        self._clear()
        self._engaged = False

    def _clear(self) -> None:
        if self._warning_handle is not None:
            self._warning_handle.cancel()
            self._warning_handle = None
        if self._expiry_handle is not None:
            self._expiry_handle.cancel()
            self._expiry_handle = None
        self._warning_deadline = None
        self._expiry_deadline = None
        self._warning_active = False

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def set_foreground(self, visible: bool) -> bool:
        """Record a page visibility change.

        Returns ``True`` when becoming visible re-armed the timers.
        """
        self._foreground = visible
        if visible and self._engaged:
            self.arm()
            return True
        return False

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _fire_warning(self) -> None:
        self._warning_handle = None
        self._warning_deadline = None
        self._warning_active = True
        lead = WARNING_LEAD_MINUTES * 60.0
        self._expiry_deadline = self._scheduler.time() + lead
        self._expiry_handle = self._scheduler.call_later(lead, self._fire_expiry)
        self._invoke(self._on_warning, "warning")

    def _fire_expiry(self) -> None:
        self._expiry_handle = None
        self._expiry_deadline = None
        self._warning_active = False
        self._engaged = False
        self._invoke(self._on_expire, "expiry")

    def _invoke(self, callback: Callable[[], None], label: str) -> None:
        try:
            callback()
        except Exception as exc:
            self._log_event(
                "TIMER_CALLBACK_FAILED",
                "Session %s callback raised: %s",
                label,
                exc,
                level=logging.ERROR,
                exc_info=True,
            )
