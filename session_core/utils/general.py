"""Small helpers shared by the identity services and the console shell."""

from __future__ import annotations

from typing import Optional


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


def email_local_part(email: Optional[str]) -> str:
    """Return the part of *email* before ``@`` (empty string when absent)."""
    if not email:
        return ""
    return email.split("@", 1)[0].strip()


def format_countdown(seconds: Optional[float]) -> str:
    """Render a remaining duration as ``M:SS`` for the expiry warning.

    Negative and ``None`` inputs render as ``0:00``; fractional seconds
    round up so the display never shows ``0:00`` while time remains.
    """
    if seconds is None or seconds <= 0:
        return "0:00"
    whole = int(seconds) if float(seconds).is_integer() else int(seconds) + 1
    minutes, secs = divmod(whole, 60)
    return f"{minutes}:{secs:02d}"
