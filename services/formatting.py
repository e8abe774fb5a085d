"""Small text helpers shared by urgency titles, summaries and e-mails."""

from __future__ import annotations

from typing import Any

CURRENCY_SYMBOL = "₹"


def _group_indian(digits: str) -> str:
    # Last three digits form one group, the rest are grouped in pairs.
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_amount(value: Any) -> str:
    """Format a number with Indian digit grouping and up to three decimals."""
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        number = 0.0
    sign = "-" if number < 0 else ""
    rendered = f"{abs(number):.3f}".rstrip("0").rstrip(".")
    whole, _, fraction = rendered.partition(".")
    grouped = _group_indian(whole)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_currency(value: Any) -> str:
    return f"{CURRENCY_SYMBOL}{format_amount(value)}"


def plural_suffix(count: int) -> str:
    return "" if count == 1 else "s"


def truncate(text: str, limit: int = 50) -> str:
    text = text or ""
    if len(text) > limit:
        return f"{text[:limit]}..."
    return text
