"""Typed records handed to the attention feed, plus the column/JSON boundary.

Rows arrive from SQLite with snake_case columns and leave the API with
camelCase keys.  The conversion happens here so the scoring code only ever
sees plain attributes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def camelize_keys(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {to_camel(key): value for key, value in payload.items()}


def snakify_keys(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {to_snake(key): value for key, value in payload.items()}


def _row_to_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, Mapping):
        return snakify_keys(row)
    # sqlite3.Row exposes keys() but is not a Mapping
    return {key: row[key] for key in row.keys()}


def _number(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class InvoiceForUrgency:
    id: str
    invoice_number: str
    client_name: str
    grand_total: float
    balance_due: float
    payment_status: str
    invoice_date: str
    due_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "InvoiceForUrgency":
        data = _row_to_dict(row)
        return cls(
            id=str(data["id"]),
            invoice_number=data.get("invoice_number") or "",
            client_name=data.get("client_name") or "",
            grand_total=_number(data.get("grand_total")) or 0.0,
            balance_due=_number(data.get("balance_due")) or 0.0,
            payment_status=data.get("payment_status") or "Unpaid",
            invoice_date=data.get("invoice_date") or "",
            due_date=data.get("due_date"),
        )


@dataclass
class ProjectForUrgency:
    id: str
    client_name: str
    project_name: str
    domain_name: Optional[str] = None
    domain_renewal_date: Optional[str] = None
    hosting_renewal_date: Optional[str] = None
    pending_amount: Optional[float] = None
    payment_status: Optional[str] = None

    @classmethod
    def from_row(cls, row: Any) -> "ProjectForUrgency":
        data = _row_to_dict(row)
        return cls(
            id=str(data["id"]),
            client_name=data.get("client_name") or "",
            project_name=data.get("project_name") or "",
            domain_name=data.get("domain_name"),
            domain_renewal_date=data.get("domain_renewal_date"),
            hosting_renewal_date=data.get("hosting_renewal_date"),
            pending_amount=_number(data.get("pending_amount")),
            payment_status=data.get("payment_status"),
        )


@dataclass
class AISubscriptionForUrgency:
    id: str
    tool_name: str
    cancel_by_date: Optional[str] = None
    manual_status: Optional[str] = None
    cost: Optional[float] = None

    @classmethod
    def from_row(cls, row: Any) -> "AISubscriptionForUrgency":
        data = _row_to_dict(row)
        return cls(
            id=str(data["id"]),
            tool_name=data.get("tool_name") or "",
            cancel_by_date=data.get("cancel_by_date"),
            manual_status=data.get("manual_status") or None,
            cost=_number(data.get("cost")),
        )


@dataclass
class ActionContext:
    type: str
    id: str


@dataclass
class ActionItemForUrgency:
    id: str
    text: str
    completed: bool = False
    due_date: Optional[str] = None
    context: ActionContext = field(default_factory=lambda: ActionContext("client", ""))

    @classmethod
    def from_row(cls, row: Any) -> "ActionItemForUrgency":
        data = _row_to_dict(row)
        context = data.get("context")
        if isinstance(context, Mapping):
            action_context = ActionContext(str(context.get("type") or ""), str(context.get("id") or ""))
        else:
            action_context = ActionContext(
                str(data.get("context_type") or ""),
                str(data.get("context_id") or ""),
            )
        return cls(
            id=str(data["id"]),
            text=data.get("text") or "",
            completed=bool(data.get("completed")),
            due_date=data.get("due_date"),
            context=action_context,
        )


def rows_to(cls, rows: Iterable[Any]) -> List[Any]:
    return [cls.from_row(row) for row in rows]
