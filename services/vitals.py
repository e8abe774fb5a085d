"""Financial vitals for the dashboard bar and the AI spend summary."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, Optional

from .date_expiry import CANCELLED, EXPIRED, get_days_left_by_date, parse_iso_date
from .entities import AISubscriptionForUrgency, InvoiceForUrgency
from .settings import resolve_today
from .subscription_status import compute_subscription_status

EXPENSE_HORIZON_DAYS = 30


@dataclass
class FinancialVitals:
    total_pending_payments: float = 0.0
    revenue_this_month: float = 0.0
    thirty_day_expense_horizon: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPendingPayments": self.total_pending_payments,
            "revenueThisMonth": self.revenue_this_month,
            "thirtyDayExpenseHorizon": self.thirty_day_expense_horizon,
        }


@dataclass
class AISpendSummary:
    total_monthly_spend: float = 0.0
    active_subscriptions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalMonthlySpend": self.total_monthly_spend,
            "activeSubscriptions": self.active_subscriptions,
        }


def get_financial_vitals(
    invoices: Iterable[InvoiceForUrgency],
    ai_subscriptions: Iterable[AISubscriptionForUrgency],
    today: Optional[date] = None,
) -> FinancialVitals:
    """Sum pending payments, this month's paid revenue and the 30-day AI spend.

    Subscriptions already past their cancel-by date are left out of the
    expense horizon; it only looks forward.
    """
    today = resolve_today(today)
    start_of_month = today.replace(day=1)
    vitals = FinancialVitals()

    for invoice in invoices:
        if invoice.payment_status != "Paid":
            vitals.total_pending_payments += invoice.balance_due or 0
            continue
        issued = parse_iso_date(invoice.invoice_date)
        if issued is not None and issued >= start_of_month:
            vitals.revenue_this_month += invoice.grand_total or 0

    for subscription in ai_subscriptions:
        if subscription.manual_status == CANCELLED:
            continue
        days_left = get_days_left_by_date(subscription.cancel_by_date, today)
        if days_left is not None and 0 <= days_left <= EXPENSE_HORIZON_DAYS:
            vitals.thirty_day_expense_horizon += subscription.cost or 0

    return vitals


def get_ai_spend_summary(
    ai_subscriptions: Iterable[AISubscriptionForUrgency], today: Optional[date] = None
) -> AISpendSummary:
    today = resolve_today(today)
    summary = AISpendSummary()
    for subscription in ai_subscriptions:
        if compute_subscription_status(subscription, today) in (CANCELLED, EXPIRED):
            continue
        summary.active_subscriptions += 1
        summary.total_monthly_spend += subscription.cost or 0
    return summary
