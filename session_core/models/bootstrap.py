"""
First-Login Bootstrap Records.

Default rows seeded once per user so every dashboard widget has
something to show on day one: a zeroed performance record for the
current month, the starter badge, and a short list of onboarding tasks.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel

_WEEKDAY_LABELS: tuple[str, ...] = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


class PerformanceRecord(BaseModel):
    """Monthly production counters (``user_performance`` table)."""

    user_id: str
    month: int
    year: int
    monthly_volume: float = 0
    monthly_loans: int = 0
    ytd_volume: float = 0
    ytd_loans: int = 0
    compensation: float = 0
    fire_fund: float = 0
    recruitment_tier: int = 0
    active_recruits: int = 0
    rank: int = 0

    @classmethod
    def empty_for(cls, user_id: str, today: date) -> "PerformanceRecord":
        return cls(user_id=user_id, month=today.month, year=today.year)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class BadgeAssignment(BaseModel):
    """A badge awarded to a user (``user_badges`` table)."""

    user_id: str
    badge_id: str
    count: int = 1
    date_obtained: datetime

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class DefaultTask(BaseModel):
    """An onboarding task shown in the upcoming-tasks widget (``tasks`` table)."""

    user_id: str
    title: str
    description: str
    day: str
    date: str
    time: str
    completed: bool = False

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# (title, description, days from today, time)
_DEFAULT_TASK_TEMPLATES: tuple[tuple[str, str, int, str], ...] = (
    (
        "Complete Profile Setup",
        "Update your profile information and upload a professional photo",
        0,
        "9:00 AM",
    ),
    (
        "Review Market Updates",
        "Check the latest market trends and rate changes",
        1,
        "10:00 AM",
    ),
    (
        "Client Follow-up",
        "Follow up with potential clients from this week",
        2,
        "2:00 PM",
    ),
)


def build_default_tasks(user_id: str, today: date) -> list[DefaultTask]:
    """Return the onboarding task set anchored on *today*.

    ``date`` holds the day-of-month and ``day`` the weekday label of the
    actual calendar date, so tasks seeded on the 31st roll into the next
    month instead of producing a "32nd".
    """
    tasks: list[DefaultTask] = []
    for title, description, offset, time_label in _DEFAULT_TASK_TEMPLATES:
        due = today + timedelta(days=offset)
        tasks.append(
            DefaultTask(
                user_id=user_id,
                title=title,
                description=description,
                day=_WEEKDAY_LABELS[due.weekday()],
                date=str(due.day),
                time=time_label,
            )
        )
    return tasks
