"""Urgency scoring: one ranked "what needs attention now" feed.

Invoices, renewals, AI subscriptions and open tasks are scored on a common
integer scale and merged into a single list, highest score first.  Money that
is already late grows exponentially so old overdue invoices dominate; items
that are merely approaching a deadline climb more gently.
"""

from __future__ import annotations

import logging
import math
import sys
from dataclasses import dataclass, fields, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .date_expiry import CANCELLED, get_days_left_by_date, parse_iso_date
from .entities import (
    ActionItemForUrgency,
    AISubscriptionForUrgency,
    InvoiceForUrgency,
    ProjectForUrgency,
    to_snake,
)
from .formatting import format_currency, plural_suffix, truncate
from .settings import resolve_today

logger = logging.getLogger(__name__)

OVERDUE_INVOICE = "overdue_invoice"
PENDING_INVOICE = "pending_invoice"
DOMAIN_RENEWAL = "domain_renewal"
HOSTING_RENEWAL = "hosting_renewal"
AI_SUBSCRIPTION = "ai_subscription"
ACTION_ITEM = "action_item"

DEFAULT_ALL_CLEAR_THRESHOLD = 200
DEFAULT_PAYMENT_WINDOW_DAYS = 30


@dataclass(frozen=True)
class ExponentialScore:
    base_score: float
    multiplier: float


@dataclass(frozen=True)
class PendingScore:
    base_score: float
    max_multiplier: float = 1.0


@dataclass(frozen=True)
class RenewalScore:
    base_score: float
    multiplier: float
    window_days: int


@dataclass(frozen=True)
class FlatScore:
    base_score: float


@dataclass(frozen=True)
class UrgencyScoreConfig:
    overdue_invoice: ExponentialScore = ExponentialScore(1000, 1.2)
    pending_invoice: PendingScore = PendingScore(500, 1.0)
    domain_renewal: RenewalScore = RenewalScore(300, 1.1, 30)
    hosting_renewal: RenewalScore = RenewalScore(300, 1.1, 30)
    ai_subscription: RenewalScore = RenewalScore(150, 1.2, 7)
    action_item: FlatScore = FlatScore(250)


DEFAULT_CONFIG = UrgencyScoreConfig()


def config_from_overrides(overrides: Optional[Mapping[str, Any]]) -> UrgencyScoreConfig:
    """Build a config from a settings mapping such as ``{"aiSubscription": {"windowDays": 14}}``."""
    config = DEFAULT_CONFIG
    if not overrides:
        return config
    if not isinstance(overrides, Mapping):
        logger.warning("Ignoring urgency overrides of type %s", type(overrides).__name__)
        return config
    sections = {item.name for item in fields(UrgencyScoreConfig)}
    for raw_section, raw_values in overrides.items():
        section = to_snake(raw_section)
        if section not in sections or not isinstance(raw_values, Mapping):
            logger.warning("Ignoring unknown urgency section %r", raw_section)
            continue
        current = getattr(config, section)
        allowed = {item.name for item in fields(current)}
        changes: Dict[str, Any] = {}
        for raw_key, value in raw_values.items():
            key = to_snake(raw_key)
            if key not in allowed:
                logger.warning("Ignoring unknown urgency setting %s.%s", raw_section, raw_key)
                continue
            try:
                changes[key] = int(value) if key == "window_days" else float(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric urgency setting %s.%s=%r", raw_section, raw_key, value)
        if changes:
            config = replace(config, **{section: replace(current, **changes)})
    return config


# Ceiling for scores that outgrow a float, e.g. invoices overdue for decades.
MAX_URGENCY_SCORE = sys.maxsize


def _round(value: float) -> int:
    # Halves round up, matching the scores shown by the dashboard.
    return int(math.floor(value + 0.5))


def _exponential_score(base_score: float, multiplier: float, exponent: int) -> int:
    try:
        value = base_score * multiplier ** exponent
    except OverflowError:
        return MAX_URGENCY_SCORE
    if not math.isfinite(value) or value >= MAX_URGENCY_SCORE:
        return MAX_URGENCY_SCORE
    return _round(value)


def calculate_overdue_invoice_score(days_overdue: int, config: ExponentialScore = DEFAULT_CONFIG.overdue_invoice) -> int:
    if days_overdue <= 0:
        return 0
    return _exponential_score(config.base_score, config.multiplier, days_overdue)


def calculate_pending_invoice_score(
    days_until_due: int,
    total_days_given: int,
    config: PendingScore = DEFAULT_CONFIG.pending_invoice,
) -> int:
    """Linear 10%..100% of the base score across the invoice's payment window."""
    if days_until_due <= 0:
        return 0
    progress_ratio = max(0.0, min(1.0, 1 - days_until_due / max(total_days_given, 1)))
    multiplier = 0.1 + progress_ratio * (config.max_multiplier - 0.1)
    return _round(config.base_score * multiplier)


def calculate_renewal_score(days_left: int, config: RenewalScore) -> int:
    if days_left > config.window_days:
        return 0
    if days_left < 0:
        return _exponential_score(config.base_score, config.multiplier, abs(days_left) + config.window_days)
    return _exponential_score(config.base_score, config.multiplier, config.window_days - days_left)


def calculate_action_item_score(is_urgent: bool, config: FlatScore = DEFAULT_CONFIG.action_item) -> int:
    return _round(config.base_score) if is_urgent else 0


@dataclass
class UrgencyItem:
    id: str
    type: str
    title: str
    context: str
    urgency_score: int
    action_label: str
    action_link: str
    days_overdue: Optional[int] = None
    days_left: Optional[int] = None
    amount: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "context": self.context,
            "urgencyScore": self.urgency_score,
            "actionLabel": self.action_label,
            "actionLink": self.action_link,
        }
        if self.days_overdue is not None:
            payload["daysOverdue"] = self.days_overdue
        if self.days_left is not None:
            payload["daysLeft"] = self.days_left
        if self.amount is not None:
            payload["amount"] = self.amount
        return payload


def _invoice_item(invoice: InvoiceForUrgency, config: UrgencyScoreConfig, today: date) -> Optional[UrgencyItem]:
    if invoice.payment_status == "Paid":
        return None

    due = parse_iso_date(invoice.due_date)
    days_until_due = (due - today).days if due is not None else None
    context = f"Client: {invoice.client_name}, Amount: {format_currency(invoice.balance_due)}"

    if invoice.payment_status == "Overdue" or (days_until_due is not None and days_until_due < 0):
        days_overdue = -days_until_due if days_until_due is not None and days_until_due < 0 else 1
        score = calculate_overdue_invoice_score(days_overdue, config.overdue_invoice)
        if score <= 0:
            return None
        return UrgencyItem(
            id=invoice.id,
            type=OVERDUE_INVOICE,
            title=f"Invoice {invoice.invoice_number} is {days_overdue} day{plural_suffix(days_overdue)} overdue",
            context=context,
            urgency_score=score,
            days_overdue=days_overdue,
            amount=invoice.balance_due,
            action_label="Send Reminder",
            action_link=f"/invoices?reminder={invoice.id}",
        )

    if invoice.payment_status not in ("Unpaid", "Partial") or days_until_due is None:
        return None

    issued = parse_iso_date(invoice.invoice_date)
    total_days_given = (due - issued).days if issued is not None else DEFAULT_PAYMENT_WINDOW_DAYS
    score = calculate_pending_invoice_score(days_until_due, total_days_given, config.pending_invoice)
    if score <= 0:
        return None
    return UrgencyItem(
        id=invoice.id,
        type=PENDING_INVOICE,
        title=f"Invoice {invoice.invoice_number} due in {days_until_due} day{plural_suffix(days_until_due)}",
        context=context,
        urgency_score=score,
        days_left=days_until_due,
        amount=invoice.balance_due,
        action_label="View Invoice",
        action_link=f"/invoices?preview={invoice.id}",
    )


def _renewal_item(
    project: ProjectForUrgency,
    kind: str,
    renewal_date: Optional[str],
    subject: str,
    config: RenewalScore,
    today: date,
) -> Optional[UrgencyItem]:
    days_left = get_days_left_by_date(renewal_date, today)
    if days_left is None or days_left > config.window_days:
        return None
    score = calculate_renewal_score(days_left, config)
    if score <= 0:
        return None
    label = "Domain" if kind == DOMAIN_RENEWAL else "Hosting"
    if days_left < 0:
        title = f'{label} for "{subject}" expired {abs(days_left)} days ago'
    else:
        title = f'{label} renewal for "{subject}" in {days_left} day{plural_suffix(days_left)}'
    prefix = "domain" if kind == DOMAIN_RENEWAL else "hosting"
    return UrgencyItem(
        id=f"{prefix}-{project.id}",
        type=kind,
        title=title,
        context=f"Client: {project.client_name}",
        urgency_score=score,
        days_left=days_left,
        action_label="View Renewal",
        action_link=f"/projects/{project.id}",
    )


def _subscription_item(
    subscription: AISubscriptionForUrgency, config: RenewalScore, today: date
) -> Optional[UrgencyItem]:
    if subscription.manual_status == CANCELLED:
        return None
    days_left = get_days_left_by_date(subscription.cancel_by_date, today)
    if days_left is None or days_left > config.window_days:
        return None
    score = calculate_renewal_score(days_left, config)
    if score <= 0:
        return None
    if days_left < 0:
        title = f'AI subscription "{subscription.tool_name}" expired {abs(days_left)} days ago'
    else:
        title = f'AI subscription "{subscription.tool_name}" expires in {days_left} day{plural_suffix(days_left)}'
    context = f"Monthly cost: {format_currency(subscription.cost)}" if subscription.cost else "Free trial"
    return UrgencyItem(
        id=subscription.id,
        type=AI_SUBSCRIPTION,
        title=title,
        context=context,
        urgency_score=score,
        days_left=days_left,
        amount=subscription.cost,
        action_label="Review Subscription",
        action_link=f"/ai-subscriptions?focus={subscription.id}",
    )


def _action_item(action: ActionItemForUrgency, config: FlatScore, today: date) -> Optional[UrgencyItem]:
    if action.completed:
        return None
    days_left = get_days_left_by_date(action.due_date, today)
    # Due tomorrow, today and overdue by any amount all score the same.
    is_urgent = days_left is not None and days_left <= 1
    score = calculate_action_item_score(is_urgent, config)
    if score <= 0:
        return None
    if days_left == 0:
        when = "today"
    elif days_left < 0:
        when = f"{abs(days_left)} days ago"
    else:
        when = "tomorrow"
    link = f"/projects/{action.context.id}" if action.context.type == "project" else "/"
    return UrgencyItem(
        id=action.id,
        type=ACTION_ITEM,
        title=f'Task "{truncate(action.text, 50)}" is due {when}',
        context=f"Type: {action.context.type}",
        urgency_score=score,
        days_left=days_left,
        action_label="View Task",
        action_link=link,
    )


def compute_all_urgency_items(
    invoices: Iterable[InvoiceForUrgency],
    projects: Iterable[ProjectForUrgency],
    ai_subscriptions: Iterable[AISubscriptionForUrgency],
    action_items: Iterable[ActionItemForUrgency],
    config: Optional[UrgencyScoreConfig] = None,
    today: Optional[date] = None,
) -> List[UrgencyItem]:
    """Score every candidate and return them highest score first.

    Pure for a given ``today``: paid invoices, cancelled subscriptions,
    completed tasks and anything scoring 0 are left out.  Equal scores keep
    their input order (invoices, renewals, subscriptions, tasks).
    """
    config = config or DEFAULT_CONFIG
    today = resolve_today(today)
    items: List[UrgencyItem] = []

    for invoice in invoices:
        item = _invoice_item(invoice, config, today)
        if item is not None:
            items.append(item)

    for project in projects:
        candidates = (
            _renewal_item(
                project,
                DOMAIN_RENEWAL,
                project.domain_renewal_date,
                project.domain_name or project.project_name,
                config.domain_renewal,
                today,
            ),
            _renewal_item(
                project,
                HOSTING_RENEWAL,
                project.hosting_renewal_date,
                project.project_name,
                config.hosting_renewal,
                today,
            ),
        )
        items.extend(item for item in candidates if item is not None)

    for subscription in ai_subscriptions:
        item = _subscription_item(subscription, config.ai_subscription, today)
        if item is not None:
            items.append(item)

    for action in action_items:
        item = _action_item(action, config.action_item, today)
        if item is not None:
            items.append(item)

    return sorted(items, key=lambda entry: entry.urgency_score, reverse=True)


def get_top_urgency_item(items: Sequence[UrgencyItem]) -> Optional[UrgencyItem]:
    if not items:
        return None
    return items[0]


def is_all_clear(items: Iterable[Any], threshold: int = DEFAULT_ALL_CLEAR_THRESHOLD) -> bool:
    """True when nothing in the feed reaches ``threshold``.

    Accepts ``UrgencyItem`` objects or their dict rendering.
    """
    for item in items:
        score = item["urgencyScore"] if isinstance(item, Mapping) else item.urgency_score
        if score >= threshold:
            return False
    return True
