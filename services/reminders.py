"""Per-device reminder log: each expiry stage surfaces at most once a day.

Keys look like ``ai:<id>:3`` (kind, entity id, stage).  The log only
remembers the last date a key was shown, so concurrent writers simply
overwrite each other.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from data_paths import ensure_data_root

from .date_expiry import CANCELLED, get_days_left_by_date, match_reminder_stage, stage_label
from .entities import AISubscriptionForUrgency, ProjectForUrgency
from .settings import resolve_today

logger = logging.getLogger(__name__)

REMINDER_LOG_FILENAME = "reminder_log.json"

AI_KIND = "ai"
DOMAIN_KIND = "domain"
HOSTING_KIND = "hosting"
REMINDER_KINDS = (AI_KIND, DOMAIN_KIND, HOSTING_KIND)


class ReminderStore(Protocol):
    """Key/value storage for the reminder log."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryReminderStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._entries: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        self._entries[key] = value


class JsonFileReminderStore:
    """Reminder log kept as one JSON object on disk."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path else ensure_data_root() / REMINDER_LOG_FILENAME
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unable to read reminder log %s: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Reminder log %s is not a JSON object; ignoring it", self._path)
            return {}
        return payload

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            entries = self._load()
            entries[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Readers only ever see the old file or the complete new one.
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                json.dump(entries, handle, indent=2, sort_keys=True)
                tmp_path = Path(handle.name)
            try:
                os.replace(tmp_path, self._path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise


class ReminderLedger:
    def __init__(self, store: ReminderStore) -> None:
        self._store = store

    def has_shown_reminder(self, key: str, today_iso: str) -> bool:
        return self._store.get(key) == today_iso

    def mark_reminder_shown(self, key: str, today_iso: str) -> None:
        self._store.set(key, today_iso)


_default_ledger: Optional[ReminderLedger] = None


def get_reminder_ledger() -> ReminderLedger:
    global _default_ledger
    if _default_ledger is None:
        _default_ledger = ReminderLedger(JsonFileReminderStore())
    return _default_ledger


def reset_reminder_ledger() -> None:
    global _default_ledger
    _default_ledger = None


def has_shown_reminder(key: str, today_iso: str) -> bool:
    return get_reminder_ledger().has_shown_reminder(key, today_iso)


def mark_reminder_shown(key: str, today_iso: str) -> None:
    get_reminder_ledger().mark_reminder_shown(key, today_iso)


def reminder_key(kind: str, entity_id: str, stage: int) -> str:
    return f"{kind}:{entity_id}:{stage}"


@dataclass
class ReminderCandidate:
    key: str
    kind: str
    entity_id: str
    stage: int
    days_left: int
    title: str
    date_iso: str
    link: str

    @property
    def label(self) -> str:
        return stage_label(self.stage, self.days_left)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "entityId": self.entity_id,
            "stage": self.stage,
            "stageLabel": self.label,
            "daysLeft": self.days_left,
            "title": self.title,
            "dateIso": self.date_iso,
            "link": self.link,
        }


def _candidate(kind: str, entity_id: str, date_value: Optional[str], title: str, link: str, today: date):
    days_left = get_days_left_by_date(date_value, today)
    stage = match_reminder_stage(days_left)
    if stage is None:
        return None
    return ReminderCandidate(
        key=reminder_key(kind, entity_id, stage),
        kind=kind,
        entity_id=entity_id,
        stage=stage,
        days_left=days_left,
        title=title,
        date_iso=str(date_value),
        link=link,
    )


def collect_reminder_candidates(
    projects: Iterable[ProjectForUrgency],
    ai_subscriptions: Iterable[AISubscriptionForUrgency],
    today: Optional[date] = None,
) -> List[ReminderCandidate]:
    today = resolve_today(today)
    candidates: List[ReminderCandidate] = []

    for subscription in ai_subscriptions:
        if subscription.manual_status == CANCELLED:
            continue
        candidate = _candidate(
            AI_KIND,
            subscription.id,
            subscription.cancel_by_date,
            f"AI: {subscription.tool_name}",
            f"/ai-subscriptions?focus={subscription.id}",
            today,
        )
        if candidate:
            candidates.append(candidate)

    for project in projects:
        for candidate in (
            _candidate(
                DOMAIN_KIND,
                project.id,
                project.domain_renewal_date,
                f"Domain: {project.client_name} / {project.domain_name or project.project_name}",
                "/projects?renewal=domain",
                today,
            ),
            _candidate(
                HOSTING_KIND,
                project.id,
                project.hosting_renewal_date,
                f"Hosting: {project.client_name} / {project.project_name}",
                "/projects?renewal=hosting",
                today,
            ),
        ):
            if candidate:
                candidates.append(candidate)

    return candidates


def next_reminder(
    projects: Iterable[ProjectForUrgency],
    ai_subscriptions: Iterable[AISubscriptionForUrgency],
    ledger: Optional[ReminderLedger] = None,
    today: Optional[date] = None,
) -> Optional[ReminderCandidate]:
    """Return the single most urgent reminder not yet shown today, if any."""
    today = resolve_today(today)
    ledger = ledger or get_reminder_ledger()
    today_iso = today.isoformat()
    pending = [
        candidate
        for candidate in collect_reminder_candidates(projects, ai_subscriptions, today)
        if not ledger.has_shown_reminder(candidate.key, today_iso)
    ]
    if not pending:
        return None
    return sorted(pending, key=lambda candidate: candidate.stage)[0]
