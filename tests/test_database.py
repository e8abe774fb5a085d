import pathlib
import sqlite3
import sys
import unittest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import database
from services.records import get_record_registry


class DatabaseRecordTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(':memory:')
        self.conn.row_factory = sqlite3.Row
        self.conn.execute('PRAGMA foreign_keys=ON;')
        database.create_schema(self.conn.cursor())
        self.registry = get_record_registry()

    def tearDown(self):
        self.conn.close()

    def _insert(self, resource, payload):
        schema = self.registry.get(resource)
        return database.insert_record(self.conn, schema, schema.validate(payload))

    def test_schema_creates_every_table(self):
        tables = {
            row['name']
            for row in self.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        self.assertTrue(set(database.TABLE_DEFINITIONS).issubset(tables))

    def test_create_schema_is_idempotent(self):
        database.create_schema(self.conn.cursor())

    def test_invoice_rows_carry_joined_names(self):
        client_id = self._insert('clients', {'name': 'Acme', 'email': 'a@acme.in'})
        project_id = self._insert('projects', {'clientId': client_id, 'projectName': 'Storefront'})
        invoice_id = self._insert('invoices', {
            'invoiceNumber': 'INV-1',
            'clientId': client_id,
            'projectId': project_id,
            'invoiceDate': '2024-01-01',
            'grandTotal': 1000,
            'balanceDue': 1000,
        })

        schema = self.registry.get('invoices')
        payload = schema.to_payload(database.get_record(self.conn, schema, invoice_id))
        self.assertEqual(payload['clientName'], 'Acme')
        self.assertEqual(payload['clientEmail'], 'a@acme.in')
        self.assertEqual(payload['projectName'], 'Storefront')
        self.assertEqual(payload['paymentStatus'], 'Unpaid')

        invoices = database.fetch_invoices_for_urgency(self.conn)
        self.assertEqual(len(invoices), 1)
        self.assertEqual(invoices[0].client_name, 'Acme')
        self.assertEqual(invoices[0].balance_due, 1000.0)

    def test_update_and_delete_report_missing_rows(self):
        schema = self.registry.get('action-items')
        item_id = self._insert('action-items', {'text': 'Send quote', 'contextType': 'client', 'contextId': 'c1'})

        self.assertTrue(database.update_record(self.conn, schema, item_id, {'completed': True}))
        self.assertFalse(database.update_record(self.conn, schema, 'missing', {'completed': True}))
        self.assertFalse(database.update_record(self.conn, schema, 'missing', {}))

        items = database.fetch_action_items_for_urgency(self.conn)
        self.assertTrue(items[0].completed)
        self.assertEqual(items[0].context.type, 'client')

        self.assertTrue(database.delete_record(self.conn, schema, item_id))
        self.assertFalse(database.delete_record(self.conn, schema, item_id))

    def test_unique_invoice_number(self):
        payload = {'invoiceNumber': 'INV-1', 'invoiceDate': '2024-01-01'}
        self._insert('invoices', payload)
        with self.assertRaises(sqlite3.IntegrityError):
            self._insert('invoices', payload)

    def test_urgency_fetchers_read_projects_and_subscriptions(self):
        client_id = self._insert('clients', {'name': 'Globex'})
        self._insert('projects', {
            'clientId': client_id,
            'projectName': 'Blog',
            'domainName': 'globex.dev',
            'domainRenewalDate': '2024-02-01',
        })
        self._insert('ai-subscriptions', {'toolName': 'Cursor', 'cancelByDate': '2024-01-18', 'cost': '20'})

        projects = database.fetch_projects_for_urgency(self.conn)
        self.assertEqual(projects[0].client_name, 'Globex')
        self.assertEqual(projects[0].domain_renewal_date, '2024-02-01')
        self.assertIsNone(projects[0].hosting_renewal_date)

        subscriptions = database.fetch_ai_subscriptions_for_urgency(self.conn)
        self.assertEqual(subscriptions[0].tool_name, 'Cursor')
        self.assertEqual(subscriptions[0].cost, 20.0)
        self.assertIsNone(subscriptions[0].manual_status)

    def test_list_records_uses_schema_order(self):
        for name in ('zeta', 'Alpha', 'mid'):
            self._insert('clients', {'name': name})
        schema = self.registry.get('clients')
        names = [row['name'] for row in database.list_records(self.conn, schema)]
        self.assertEqual(names, ['Alpha', 'mid', 'zeta'])

    def test_branding_is_seeded_once(self):
        database.create_schema(self.conn.cursor())
        count = self.conn.execute("SELECT COUNT(*) FROM business_branding").fetchone()[0]
        self.assertEqual(count, 1)
        self.assertEqual(database.fetch_branding_business_name(self.conn), 'NBK Business Solutions')

        schema = self.registry.get('business-branding')
        branding_id = database.list_records(self.conn, schema)[0]['id']
        database.update_record(self.conn, schema, branding_id, {'business_name': 'Studio North'})
        self.assertEqual(database.fetch_branding_business_name(self.conn), 'Studio North')

    def test_logs_and_line_items_follow_their_parent(self):
        project_id = self._insert('projects', {'projectName': 'Storefront'})
        other_id = self._insert('projects', {'projectName': 'Blog'})
        self._insert('effort-logs', {'projectId': project_id, 'date': '2024-01-10', 'hours': 2})
        self._insert('effort-logs', {'projectId': project_id, 'date': '2024-01-12', 'hours': 1.5})
        self._insert('effort-logs', {'projectId': other_id, 'date': '2024-01-11', 'hours': 4})
        self._insert('project-logs', {'projectId': project_id, 'text': 'Launched checkout'})

        effort = self.registry.get('effort-logs')
        rows = database.list_records(self.conn, effort, {'project_id': project_id, 'unknown': 'x'})
        self.assertEqual([row['date'] for row in rows], ['2024-01-12', '2024-01-10'])
        self.assertEqual(rows[0]['project_name'], 'Storefront')

        invoice_id = self._insert('invoices', {'invoiceNumber': 'INV-7', 'invoiceDate': '2024-01-01'})
        self._insert('invoice-items', {'invoiceId': invoice_id, 'description': 'Design', 'quantity': 2, 'rate': 500, 'total': 1000})
        self.assertEqual([row['description'] for row in database.fetch_invoice_items(self.conn, invoice_id)], ['Design'])

        database.delete_record(self.conn, self.registry.get('projects'), project_id)
        database.delete_record(self.conn, self.registry.get('invoices'), invoice_id)
        self.assertEqual(len(database.list_records(self.conn, effort)), 1)
        self.assertEqual(database.list_records(self.conn, self.registry.get('project-logs')), [])
        self.assertEqual(database.fetch_invoice_items(self.conn, invoice_id), [])

    def test_logs_require_an_existing_project(self):
        with self.assertRaises(sqlite3.IntegrityError):
            self._insert('effort-logs', {'projectId': 'missing', 'date': '2024-01-10', 'hours': 1})


if __name__ == '__main__':
    unittest.main()
