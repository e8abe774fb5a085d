"""Schema-driven validation for the control center's CRUD payloads."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .date_expiry import CANCELLED, parse_iso_date
from .entities import to_camel
from .settings import DEFAULT_BUSINESS_NAME


class RecordValidationError(Exception):
    """Raised when record validation fails."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("Record validation failed")
        self.errors = errors


@dataclass
class FieldDefinition:
    """A single column exposed through the JSON API.

    ``name`` is the snake_case column; the payload key is its camelCase form.
    """

    name: str
    field_type: str = "string"
    required: bool = False
    default: Any = None
    choices: Optional[Sequence[Any]] = None

    @property
    def payload_key(self) -> str:
        return to_camel(self.name)

    def clean(self, value: Any) -> Any:
        """Normalise input data for this field."""
        if value is None:
            return None
        if self.field_type in {"string", "text"}:
            cleaned = str(value).strip()
            if self.choices is not None and cleaned not in self.choices:
                raise ValueError(f"Must be one of: {', '.join(str(choice) for choice in self.choices)}")
            return cleaned
        if self.field_type == "number":
            if value == "":
                return None
            if isinstance(value, bool):
                raise ValueError("Expected a number")
            number = float(value)
            if not math.isfinite(number):
                raise ValueError("Expected a finite number")
            return number
        if self.field_type == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, (int, float)):
                return bool(value)
            if isinstance(value, str):
                return value.strip().lower() in {"true", "1", "yes", "y"}
            return bool(value)
        if self.field_type == "date":
            if value == "":
                return None
            parsed = parse_iso_date(value)
            if parsed is None:
                raise ValueError("Expected an ISO date (YYYY-MM-DD)")
            return parsed.isoformat()
        return value


@dataclass
class RecordSchema:
    """Describes one table and how its rows travel through the API."""

    entity_type: str
    table: str
    fields: Dict[str, FieldDefinition]
    order_by: str = "t.created_at DESC"
    description: str = ""

    @property
    def columns(self) -> List[str]:
        return list(self.fields)

    def validate(self, payload: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
        """Return ``{column: value}`` for a camelCase payload.

        With ``partial`` set only the keys present in the payload are checked,
        which is what updates need.
        """
        errors: Dict[str, str] = {}
        normalised: Dict[str, Any] = {}
        for name, definition in self.fields.items():
            key = definition.payload_key
            present = key in payload or name in payload
            incoming = payload.get(key, payload.get(name))
            if partial and not present:
                continue
            if incoming in (None, ""):
                if definition.required and (definition.default is None or partial):
                    errors[key] = "Field is required"
                    continue
                if not partial and definition.default is not None:
                    default_value = definition.default() if callable(definition.default) else definition.default
                    normalised[name] = definition.clean(default_value)
                elif present:
                    normalised[name] = None
                continue
            try:
                normalised[name] = definition.clean(incoming)
            except (ValueError, TypeError) as exc:
                errors[key] = str(exc)
        if errors:
            raise RecordValidationError(errors)
        return normalised

    def to_payload(self, row: Any) -> Dict[str, Any]:
        keys = row.keys()
        payload = {"id": row["id"]}
        for name, definition in self.fields.items():
            if name not in keys:
                continue
            value = row[name]
            if definition.field_type == "boolean" and value is not None:
                value = bool(value)
            payload[definition.payload_key] = value
        for extra in ("client_name", "client_email", "project_name", "created_at", "updated_at"):
            if extra in keys and extra not in self.fields:
                payload[to_camel(extra)] = row[extra]
        return payload


class RecordRegistry:
    """In-memory registry of schemas keyed by API resource name."""

    def __init__(self) -> None:
        self._schemas: Dict[str, RecordSchema] = {}

    def register(self, resource: str, schema: RecordSchema) -> None:
        self._schemas[resource] = schema

    def get(self, resource: str) -> RecordSchema:
        if resource not in self._schemas:
            raise KeyError(f"Unknown resource '{resource}'")
        return self._schemas[resource]

    def has(self, resource: str) -> bool:
        return resource in self._schemas

    def items(self):
        return list(self._schemas.items())


def new_record_id() -> str:
    return str(uuid.uuid4())


def _build_default_registry() -> RecordRegistry:
    registry = RecordRegistry()
    registry.register(
        "clients",
        RecordSchema(
            entity_type="client",
            table="clients",
            fields={
                "name": FieldDefinition("name", required=True),
                "email": FieldDefinition("email"),
                "phone": FieldDefinition("phone"),
                "notes": FieldDefinition("notes", field_type="text"),
            },
            order_by="t.name COLLATE NOCASE",
        ),
    )
    registry.register(
        "email-accounts",
        RecordSchema(
            entity_type="email_account",
            table="email_accounts",
            fields={
                "email": FieldDefinition("email", required=True),
                "provider": FieldDefinition("provider", required=True),
                "status": FieldDefinition("status", default="Active", choices=("Active", "Inactive")),
                "notes": FieldDefinition("notes", field_type="text"),
            },
            order_by="t.email COLLATE NOCASE",
            description="Inventory of mailboxes used to register domains, hosting and tools.",
        ),
    )
    registry.register(
        "projects",
        RecordSchema(
            entity_type="project",
            table="projects",
            fields={
                "client_id": FieldDefinition("client_id"),
                "project_name": FieldDefinition("project_name", required=True),
                "domain_name": FieldDefinition("domain_name"),
                "domain_provider": FieldDefinition("domain_provider"),
                "hosting_platform": FieldDefinition("hosting_platform", default="Netlify"),
                "domain_purchase_date": FieldDefinition("domain_purchase_date", field_type="date"),
                "domain_renewal_date": FieldDefinition("domain_renewal_date", field_type="date"),
                "hosting_start_date": FieldDefinition("hosting_start_date", field_type="date"),
                "hosting_renewal_date": FieldDefinition("hosting_renewal_date", field_type="date"),
                "status": FieldDefinition("status", default="Ongoing"),
                "project_amount": FieldDefinition("project_amount", field_type="number"),
                "payment_status": FieldDefinition(
                    "payment_status", choices=("Paid", "Pending", "Partial")
                ),
                "pending_amount": FieldDefinition("pending_amount", field_type="number"),
                "completed_date": FieldDefinition("completed_date", field_type="date"),
                "notes": FieldDefinition("notes", field_type="text"),
            },
        ),
    )
    registry.register(
        "invoices",
        RecordSchema(
            entity_type="invoice",
            table="invoices",
            fields={
                "invoice_number": FieldDefinition("invoice_number", required=True),
                "client_id": FieldDefinition("client_id"),
                "project_id": FieldDefinition("project_id"),
                "invoice_date": FieldDefinition("invoice_date", field_type="date", required=True),
                "due_date": FieldDefinition("due_date", field_type="date"),
                "grand_total": FieldDefinition("grand_total", field_type="number", default=0),
                "paid_amount": FieldDefinition("paid_amount", field_type="number", default=0),
                "balance_due": FieldDefinition("balance_due", field_type="number", default=0),
                "payment_status": FieldDefinition(
                    "payment_status",
                    default="Unpaid",
                    choices=("Paid", "Unpaid", "Partial", "Overdue"),
                ),
                "notes": FieldDefinition("notes", field_type="text"),
            },
            order_by="t.invoice_date DESC",
        ),
    )
    registry.register(
        "invoice-items",
        RecordSchema(
            entity_type="invoice_item",
            table="invoice_items",
            fields={
                "invoice_id": FieldDefinition("invoice_id", required=True),
                "description": FieldDefinition("description", field_type="text", required=True),
                "quantity": FieldDefinition("quantity", field_type="number", default=1),
                "rate": FieldDefinition("rate", field_type="number", default=0),
                "total": FieldDefinition("total", field_type="number", default=0),
            },
            order_by="t.created_at, t.rowid",
        ),
    )
    registry.register(
        "ai-subscriptions",
        RecordSchema(
            entity_type="ai_subscription",
            table="ai_subscriptions",
            fields={
                "project_id": FieldDefinition("project_id"),
                "tool_name": FieldDefinition("tool_name", required=True),
                "platform": FieldDefinition("platform"),
                "subscription_type": FieldDefinition(
                    "subscription_type", default="Paid", choices=("Free Trial", "Paid")
                ),
                "start_date": FieldDefinition("start_date", field_type="date"),
                "end_date": FieldDefinition("end_date", field_type="date"),
                "cancel_by_date": FieldDefinition("cancel_by_date", field_type="date"),
                "cost": FieldDefinition("cost", field_type="number"),
                "manual_status": FieldDefinition("manual_status", choices=(CANCELLED,)),
                "notes": FieldDefinition("notes", field_type="text"),
            },
            order_by="t.cancel_by_date IS NULL, t.cancel_by_date",
        ),
    )
    registry.register(
        "action-items",
        RecordSchema(
            entity_type="action_item",
            table="action_items",
            fields={
                "text": FieldDefinition("text", field_type="text", required=True),
                "due_date": FieldDefinition("due_date", field_type="date"),
                "completed": FieldDefinition("completed", field_type="boolean", default=False),
                "context_type": FieldDefinition(
                    "context_type", required=True, choices=("project", "client")
                ),
                "context_id": FieldDefinition("context_id", required=True),
            },
        ),
    )
    registry.register(
        "project-logs",
        RecordSchema(
            entity_type="project_log",
            table="project_logs",
            fields={
                "project_id": FieldDefinition("project_id", required=True),
                "text": FieldDefinition("text", field_type="text", required=True),
            },
        ),
    )
    registry.register(
        "effort-logs",
        RecordSchema(
            entity_type="effort_log",
            table="effort_logs",
            fields={
                "project_id": FieldDefinition("project_id", required=True),
                "date": FieldDefinition("date", field_type="date", required=True),
                "hours": FieldDefinition("hours", field_type="number", required=True),
                "notes": FieldDefinition("notes", field_type="text"),
            },
            order_by="t.date DESC",
        ),
    )
    registry.register(
        "business-branding",
        RecordSchema(
            entity_type="business_branding",
            table="business_branding",
            fields={
                "business_name": FieldDefinition("business_name", required=True, default=DEFAULT_BUSINESS_NAME),
                "tagline": FieldDefinition("tagline"),
                "logo_url": FieldDefinition("logo_url"),
                "upi_qr_url": FieldDefinition("upi_qr_url"),
                "upi_id": FieldDefinition("upi_id"),
                "mobile": FieldDefinition("mobile"),
                "address": FieldDefinition("address", field_type="text"),
                "email": FieldDefinition("email"),
                "default_hourly_rate": FieldDefinition("default_hourly_rate", field_type="number"),
            },
            order_by="t.created_at, t.rowid",
            description="Singleton row holding the name and payment details used on invoices and e-mails.",
        ),
    )
    return registry


_registry: Optional[RecordRegistry] = None


def get_record_registry() -> RecordRegistry:
    global _registry
    if _registry is None:
        _registry = _build_default_registry()
    return _registry
