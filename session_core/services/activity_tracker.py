"""
Activity Tracker.

Collapses the stream of interaction events (pointer, keyboard, scroll,
touch) into a single last-activity timestamp.  At most one re-arm request
is issued per 30-second window, so a moving mouse does not reschedule the
inactivity timers on every event.
"""

from __future__ import annotations

from typing import Callable, Optional, Union

from session_core.models.enums import ActivityKind

ACTIVITY_THROTTLE_SECONDS: float = 30.0

TRACKED_ACTIVITY: frozenset[ActivityKind] = frozenset(ActivityKind)


class ActivityTracker:
    """Throttles interaction events into re-arm requests.

    Only listens while attached; the session state machine attaches it
    when a user becomes authenticated and detaches it on logout.

    Parameters
    ----------
    on_activity:
        Called when an event arrives at least
        ``ACTIVITY_THROTTLE_SECONDS`` after the last recorded activity.
        Returns whether the re-arm was accepted; a declined request
        leaves the throttle window untouched.
    clock:
        Monotonic time source in seconds (the scheduler's clock).
    """

    def __init__(self, on_activity: Callable[[], bool], clock: Callable[[], float]) -> None:
        self._on_activity = on_activity
        self._clock = clock
        self._attached: bool = False
        self._last_activity: Optional[float] = None

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def last_activity(self) -> Optional[float]:
        return self._last_activity

    def attach(self) -> None:
        """Start listening; the attach moment counts as activity."""
        self._attached = True
        self._last_activity = self._clock()

    def detach(self) -> None:
        self._attached = False

    def touch(self) -> None:
        """Record presence without requesting a re-arm."""
        self._last_activity = self._clock()

    def record(self, kind: Union[ActivityKind, str]) -> bool:
        """Feed one interaction event.

        Returns ``True`` when the event was recorded and the re-arm was
        accepted; ``False`` when it was throttled, untracked, declined,
        or the tracker is detached.
        """
        if not self._attached:
            return False
        try:
            activity = ActivityKind(kind)
        except ValueError:
            return False
        if activity not in TRACKED_ACTIVITY:
            return False

        now = self._clock()
        if (
            self._last_activity is not None
            and now - self._last_activity < ACTIVITY_THROTTLE_SECONDS
        ):
            return False

        if not self._on_activity():
            return False
        self._last_activity = now
        return True
