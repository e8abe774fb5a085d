"""Lifecycle status for AI-tool subscriptions."""

from __future__ import annotations

from datetime import date
from typing import Optional

from .date_expiry import ACTIVE, CANCELLED, EXPIRED, EXPIRING_SOON, get_days_left_by_date
from .entities import AISubscriptionForUrgency
from .settings import resolve_today

SUBSCRIPTION_WINDOW_DAYS = 7


def get_subscription_days_left(
    subscription: AISubscriptionForUrgency, today: Optional[date] = None
) -> Optional[int]:
    return get_days_left_by_date(subscription.cancel_by_date, resolve_today(today))


def compute_subscription_status(subscription: AISubscriptionForUrgency, today: Optional[date] = None) -> str:
    """Return Active, Expiring Soon, Expired or Cancelled.

    A manual cancellation wins over whatever the cancel-by date says. A
    missing or unreadable cancel-by date leaves the subscription Active.
    """
    if subscription.manual_status == CANCELLED:
        return CANCELLED
    days_left = get_subscription_days_left(subscription, today)
    if days_left is None:
        return ACTIVE
    if days_left < 0:
        return EXPIRED
    if days_left <= SUBSCRIPTION_WINDOW_DAYS:
        return EXPIRING_SOON
    return ACTIVE
