import json
import pathlib
import sys
import unittest
from datetime import date, timedelta

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.entities import AISubscriptionForUrgency, ProjectForUrgency
from services.reminders import (
    InMemoryReminderStore,
    JsonFileReminderStore,
    ReminderLedger,
    collect_reminder_candidates,
    next_reminder,
    reminder_key,
)

TODAY = date(2024, 1, 15)


def _iso(offset_days):
    return (TODAY + timedelta(days=offset_days)).isoformat()


class ReminderLedgerTests(unittest.TestCase):
    def setUp(self):
        self.ledger = ReminderLedger(InMemoryReminderStore())

    def test_marking_is_scoped_to_the_day(self):
        self.assertFalse(self.ledger.has_shown_reminder("ai:sub1:3", "2024-01-15"))
        self.ledger.mark_reminder_shown("ai:sub1:3", "2024-01-15")
        self.assertTrue(self.ledger.has_shown_reminder("ai:sub1:3", "2024-01-15"))
        self.assertFalse(self.ledger.has_shown_reminder("ai:sub1:3", "2024-01-16"))

    def test_marking_overwrites_previous_day(self):
        self.ledger.mark_reminder_shown("domain:p1:7", "2024-01-14")
        self.ledger.mark_reminder_shown("domain:p1:7", "2024-01-15")
        self.assertFalse(self.ledger.has_shown_reminder("domain:p1:7", "2024-01-14"))
        self.assertTrue(self.ledger.has_shown_reminder("domain:p1:7", "2024-01-15"))

    def test_key_format(self):
        self.assertEqual(reminder_key("hosting", "p1", 0), "hosting:p1:0")


class ReminderSelectionTests(unittest.TestCase):
    def setUp(self):
        self.projects = [
            ProjectForUrgency(
                id="p1",
                client_name="Acme",
                project_name="Acme Storefront",
                domain_name="acme.in",
                domain_renewal_date=_iso(0),
                hosting_renewal_date=_iso(-4),
            ),
            ProjectForUrgency(
                id="p2",
                client_name="Globex",
                project_name="Globex Blog",
                domain_name="globex.dev",
                domain_renewal_date=_iso(5),
                hosting_renewal_date=_iso(7),
            ),
        ]
        self.subscriptions = [
            AISubscriptionForUrgency("sub1", "Cursor", cancel_by_date=_iso(3), cost=20),
            AISubscriptionForUrgency("sub2", "Replit", cancel_by_date=_iso(1), manual_status="Cancelled"),
            AISubscriptionForUrgency("sub3", "Lovable"),
        ]

    def test_candidates_only_on_exact_stages(self):
        candidates = collect_reminder_candidates(self.projects, self.subscriptions, today=TODAY)
        self.assertEqual(
            [candidate.key for candidate in candidates],
            ["ai:sub1:3", "domain:p1:0", "hosting:p1:0", "hosting:p2:7"],
        )
        labels = {candidate.key: candidate.label for candidate in candidates}
        self.assertEqual(labels["domain:p1:0"], "Due today")
        self.assertEqual(labels["hosting:p1:0"], "Overdue")
        self.assertEqual(labels["hosting:p2:7"], "7 day reminder")

    def test_most_urgent_stage_first_then_next_after_marking(self):
        ledger = ReminderLedger(InMemoryReminderStore())
        today_iso = TODAY.isoformat()

        shown = []
        for _ in range(5):
            reminder = next_reminder(self.projects, self.subscriptions, ledger, today=TODAY)
            if reminder is None:
                break
            shown.append(reminder.key)
            ledger.mark_reminder_shown(reminder.key, today_iso)

        self.assertEqual(shown, ["domain:p1:0", "hosting:p1:0", "ai:sub1:3", "hosting:p2:7"])
        self.assertIsNone(next_reminder(self.projects, self.subscriptions, ledger, today=TODAY))

    def test_reminders_resurface_the_next_day(self):
        ledger = ReminderLedger(InMemoryReminderStore({"ai:sub1:3": "2024-01-14"}))
        reminder = next_reminder([], self.subscriptions, ledger, today=TODAY)
        self.assertEqual(reminder.key, "ai:sub1:3")
        self.assertEqual(reminder.to_dict()["stageLabel"], "3 day reminder")
        self.assertEqual(reminder.to_dict()["link"], "/ai-subscriptions?focus=sub1")

    def test_nothing_to_remind(self):
        ledger = ReminderLedger(InMemoryReminderStore())
        self.assertIsNone(next_reminder([], [], ledger, today=TODAY))


def test_json_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "reminder_log.json"
    ReminderLedger(JsonFileReminderStore(path)).mark_reminder_shown("ai:sub1:3", "2024-01-15")

    reopened = ReminderLedger(JsonFileReminderStore(path))
    assert reopened.has_shown_reminder("ai:sub1:3", "2024-01-15")
    assert json.loads(path.read_text(encoding="utf-8")) == {"ai:sub1:3": "2024-01-15"}


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_json_file_store_treats_corrupt_log_as_empty(tmp_path, content, caplog):
    path = tmp_path / "reminder_log.json"
    path.write_text(content, encoding="utf-8")
    store = JsonFileReminderStore(path)

    with caplog.at_level("WARNING", logger="services.reminders"):
        assert store.get("ai:sub1:3") is None
    assert "reminder log" in caplog.text.lower()

    store.set("ai:sub1:3", "2024-01-15")
    assert store.get("ai:sub1:3") == "2024-01-15"


def test_json_file_store_replaces_the_log_atomically(tmp_path, monkeypatch):
    path = tmp_path / "reminder_log.json"
    store = JsonFileReminderStore(path)
    store.set("ai:sub1:3", "2024-01-14")
    assert [entry.name for entry in tmp_path.iterdir()] == ["reminder_log.json"]

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("services.reminders.os.replace", failing_replace)
    with pytest.raises(OSError):
        store.set("ai:sub1:3", "2024-01-15")

    # the previous log survives intact and no temp file is left behind
    assert json.loads(path.read_text(encoding="utf-8")) == {"ai:sub1:3": "2024-01-14"}
    assert [entry.name for entry in tmp_path.iterdir()] == ["reminder_log.json"]
