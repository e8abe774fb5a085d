"""Compose the friendly payment-reminder e-mail for an unpaid invoice."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from .date_expiry import parse_iso_date
from .formatting import format_currency
from .settings import DEFAULT_BUSINESS_NAME


@dataclass
class PaymentReminderEmail:
    subject: str
    body: str
    recipient: Optional[str] = None

    @property
    def mailto(self) -> str:
        query = f"subject={quote(self.subject)}&body={quote(self.body)}"
        return f"mailto:{self.recipient or ''}?{query}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "body": self.body,
            "recipient": self.recipient,
            "mailto": self.mailto,
        }


def _long_date(value: Any) -> Optional[str]:
    parsed = parse_iso_date(value)
    if parsed is None:
        return None
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def compose_payment_reminder(invoice: Mapping[str, Any], business_name: str = DEFAULT_BUSINESS_NAME) -> PaymentReminderEmail:
    """Build the reminder from an invoice row joined with client and project names."""
    number = invoice.get("invoice_number") or ""
    issued = _long_date(invoice.get("invoice_date")) or str(invoice.get("invoice_date") or "")
    due = _long_date(invoice.get("due_date"))

    lines = [
        f"Hi {invoice.get('client_name') or 'there'},",
        "",
        "I hope this message finds you well.",
        "",
        f"I wanted to follow up regarding Invoice {number} dated {issued}"
        + (f", which was due on {due}." if due else "."),
        "",
        "Invoice Details:",
        f"- Invoice Number: {number}",
        f"- Amount Due: {format_currency(invoice.get('balance_due'))}",
    ]
    if invoice.get("project_name"):
        lines.append(f"- Project: {invoice['project_name']}")
    lines.extend(
        [
            "",
            "If you've already processed this payment, please disregard this reminder. "
            "Otherwise, I'd appreciate it if you could arrange for the payment at your earliest convenience.",
            "",
            "If you have any questions or need any clarification regarding the invoice, "
            "please don't hesitate to reach out.",
            "",
            "Thank you for your continued partnership.",
            "",
            "Best regards,",
            business_name,
        ]
    )
    return PaymentReminderEmail(
        subject=f"Friendly Reminder - Invoice {number}",
        body="\n".join(lines),
        recipient=invoice.get("client_email") or None,
    )
