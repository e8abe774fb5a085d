"""Date-driven lifecycle classification for renewals and subscriptions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from dateutil.parser import isoparse

from .settings import resolve_today

ACTIVE = "Active"
EXPIRING_SOON = "Expiring Soon"
EXPIRED = "Expired"
CANCELLED = "Cancelled"

# Reminder stages, most urgent last. Stage 0 covers "due today" and overdue.
REMINDER_STAGES = (7, 3, 1, 0)


@dataclass(frozen=True)
class DateExpiry:
    status: str
    days_left: int

    def to_dict(self):
        return {"status": self.status, "daysLeft": self.days_left}


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse an ISO date or timestamp, returning ``None`` when it cannot be read."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return isoparse(str(value).strip()).date()
    except (TypeError, ValueError, OverflowError):
        return None


def get_days_left_by_date(value: Any, today: date) -> Optional[int]:
    """Whole calendar days from ``today`` until ``value`` (negative once passed)."""
    target = parse_iso_date(value)
    if target is None:
        return None
    return (target - today).days


def compute_date_expiry(value: Any, window_days: int, today: Optional[date] = None) -> Optional[DateExpiry]:
    """Classify a tracked date against an attention window.

    Absent or unreadable dates are "not tracked" and return ``None``; callers
    must not treat that as expired.
    """
    days_left = get_days_left_by_date(value, resolve_today(today))
    if days_left is None:
        return None
    if days_left < 0:
        return DateExpiry(EXPIRED, days_left)
    if days_left <= window_days:
        return DateExpiry(EXPIRING_SOON, days_left)
    return DateExpiry(ACTIVE, days_left)


def match_reminder_stage(days_left: Optional[int]) -> Optional[int]:
    if days_left is None:
        return None
    if days_left <= 0:
        return 0
    if days_left in REMINDER_STAGES:
        return days_left
    return None


def stage_label(stage: int, days_left: Optional[int] = None) -> str:
    if stage == 0:
        if days_left is not None and days_left < 0:
            return "Overdue"
        return "Due today"
    return f"{stage} day reminder"
