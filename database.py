import sqlite3
import logging
from typing import Any, Dict, List, Optional

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from data_paths import DATA_ROOT, ensure_data_root
from services.entities import (
    ActionItemForUrgency,
    AISubscriptionForUrgency,
    InvoiceForUrgency,
    ProjectForUrgency,
    rows_to,
)
from services.records import RecordSchema, new_record_id

DATA_DIR = DATA_ROOT
DATABASE_FILE = DATA_DIR / 'control_center.db'

# Extra display columns joined onto each table when listing rows.
JOINED_COLUMNS = {
    'projects': (
        "c.name AS client_name",
        "LEFT JOIN clients c ON c.id = t.client_id",
    ),
    'invoices': (
        "c.name AS client_name, c.email AS client_email, p.project_name AS project_name",
        "LEFT JOIN clients c ON c.id = t.client_id LEFT JOIN projects p ON p.id = t.project_id",
    ),
    'ai_subscriptions': (
        "p.project_name AS project_name",
        "LEFT JOIN projects p ON p.id = t.project_id",
    ),
    'project_logs': (
        "p.project_name AS project_name",
        "LEFT JOIN projects p ON p.id = t.project_id",
    ),
    'effort_logs': (
        "p.project_name AS project_name",
        "LEFT JOIN projects p ON p.id = t.project_id",
    ),
}

DEFAULT_BRANDING = {
    'business_name': 'NBK Business Solutions',
    'tagline': 'Professional Web Development & Design',
}

TABLE_DEFINITIONS = {
    'clients': """
        CREATE TABLE IF NOT EXISTS clients (
            id TEXT PRIMARY KEY NOT NULL,
            name TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'email_accounts': """
        CREATE TABLE IF NOT EXISTS email_accounts (
            id TEXT PRIMARY KEY NOT NULL,
            email TEXT NOT NULL UNIQUE,
            provider TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'Active',
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'projects': """
        CREATE TABLE IF NOT EXISTS projects (
            id TEXT PRIMARY KEY NOT NULL,
            client_id TEXT REFERENCES clients(id) ON DELETE SET NULL,
            project_name TEXT NOT NULL,
            domain_name TEXT,
            domain_provider TEXT,
            hosting_platform TEXT DEFAULT 'Netlify',
            domain_purchase_date TEXT,
            domain_renewal_date TEXT,
            hosting_start_date TEXT,
            hosting_renewal_date TEXT,
            status TEXT NOT NULL DEFAULT 'Ongoing',
            project_amount REAL,
            payment_status TEXT,
            pending_amount REAL,
            completed_date TEXT,
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'invoices': """
        CREATE TABLE IF NOT EXISTS invoices (
            id TEXT PRIMARY KEY NOT NULL,
            invoice_number TEXT NOT NULL UNIQUE,
            client_id TEXT REFERENCES clients(id) ON DELETE SET NULL,
            project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
            invoice_date TEXT NOT NULL,
            due_date TEXT,
            grand_total REAL NOT NULL DEFAULT 0,
            paid_amount REAL DEFAULT 0,
            balance_due REAL DEFAULT 0,
            payment_status TEXT NOT NULL DEFAULT 'Unpaid',
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'invoice_items': """
        CREATE TABLE IF NOT EXISTS invoice_items (
            id TEXT PRIMARY KEY NOT NULL,
            invoice_id TEXT NOT NULL REFERENCES invoices(id) ON DELETE CASCADE,
            description TEXT NOT NULL,
            quantity REAL NOT NULL DEFAULT 1,
            rate REAL NOT NULL DEFAULT 0,
            total REAL NOT NULL DEFAULT 0,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'ai_subscriptions': """
        CREATE TABLE IF NOT EXISTS ai_subscriptions (
            id TEXT PRIMARY KEY NOT NULL,
            project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
            tool_name TEXT NOT NULL,
            platform TEXT,
            subscription_type TEXT NOT NULL DEFAULT 'Paid',
            start_date TEXT,
            end_date TEXT,
            cancel_by_date TEXT,
            cost REAL,
            manual_status TEXT,
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'action_items': """
        CREATE TABLE IF NOT EXISTS action_items (
            id TEXT PRIMARY KEY NOT NULL,
            text TEXT NOT NULL,
            due_date TEXT,
            completed INTEGER NOT NULL DEFAULT 0,
            context_type TEXT NOT NULL,
            context_id TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'project_logs': """
        CREATE TABLE IF NOT EXISTS project_logs (
            id TEXT PRIMARY KEY NOT NULL,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            text TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'business_branding': """
        CREATE TABLE IF NOT EXISTS business_branding (
            id TEXT PRIMARY KEY NOT NULL,
            business_name TEXT NOT NULL DEFAULT 'NBK Business Solutions',
            tagline TEXT,
            logo_url TEXT,
            upi_qr_url TEXT,
            upi_id TEXT,
            mobile TEXT,
            address TEXT,
            email TEXT,
            default_hourly_rate REAL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
    'effort_logs': """
        CREATE TABLE IF NOT EXISTS effort_logs (
            id TEXT PRIMARY KEY NOT NULL,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            date TEXT NOT NULL,
            hours REAL NOT NULL,
            notes TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """,
}

INDEX_DEFINITIONS = (
    "CREATE INDEX IF NOT EXISTS idx_projects_client ON projects(client_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_client ON invoices(client_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(payment_status)",
    "CREATE INDEX IF NOT EXISTS idx_ai_subscriptions_cancel_by ON ai_subscriptions(cancel_by_date)",
    "CREATE INDEX IF NOT EXISTS idx_action_items_context ON action_items(context_type, context_id)",
    "CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_project_logs_project ON project_logs(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_effort_logs_project ON effort_logs(project_id)",
)


def get_db_connection():
    """Establishes a connection to the SQLite database."""
    ensure_data_root()
    conn = sqlite3.connect(str(DATABASE_FILE), timeout=30.0, isolation_level='DEFERRED')
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
    except sqlite3.Error as e:
        logger.warning(f"Could not set PRAGMA settings: {e}")
    conn.row_factory = sqlite3.Row
    return conn


def create_schema(cursor: sqlite3.Cursor) -> None:
    """Create every table, index and ``updated_at`` trigger if missing."""
    for table, ddl in TABLE_DEFINITIONS.items():
        cursor.execute(ddl)
        cursor.execute(
            f"""
            CREATE TRIGGER IF NOT EXISTS update_{table}_updated_at
            AFTER UPDATE ON {table}
            FOR EACH ROW
            BEGIN
                UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE id = OLD.id;
            END;
            """
        )
    for statement in INDEX_DEFINITIONS:
        cursor.execute(statement)
    # Branding is a singleton row.
    cursor.execute(
        """
        INSERT INTO business_branding (id, business_name, tagline)
        SELECT ?, ?, ?
        WHERE NOT EXISTS (SELECT 1 FROM business_branding)
        """,
        (new_record_id(), DEFAULT_BRANDING['business_name'], DEFAULT_BRANDING['tagline']),
    )


def init_db():
    """Initializes the database schema."""
    conn = get_db_connection()
    try:
        create_schema(conn.cursor())
        conn.commit()
    finally:
        conn.close()
    logger.info("Database initialized.")


def _select_clause(table: str) -> str:
    extra_columns, joins = JOINED_COLUMNS.get(table, ("", ""))
    columns = "t.*" + (f", {extra_columns}" if extra_columns else "")
    return f"SELECT {columns} FROM {table} t {joins}".strip()


def list_records(conn: sqlite3.Connection, schema: RecordSchema, filters: Optional[Dict[str, Any]] = None) -> List[sqlite3.Row]:
    """List rows, optionally narrowed by equality on schema columns."""
    filters = {column: value for column, value in (filters or {}).items() if column in schema.fields}
    where = ""
    if filters:
        where = " WHERE " + " AND ".join(f"t.{column} = ?" for column in filters)
    return conn.execute(
        f"{_select_clause(schema.table)}{where} ORDER BY {schema.order_by}",
        list(filters.values()),
    ).fetchall()


def get_record(conn: sqlite3.Connection, schema: RecordSchema, record_id: str) -> Optional[sqlite3.Row]:
    return conn.execute(f"{_select_clause(schema.table)} WHERE t.id = ?", (record_id,)).fetchone()


def insert_record(conn: sqlite3.Connection, schema: RecordSchema, values: Dict[str, Any], record_id: Optional[str] = None) -> str:
    record_id = record_id or new_record_id()
    columns = ['id'] + list(values)
    placeholders = ", ".join("?" for _ in columns)
    conn.execute(
        f"INSERT INTO {schema.table} ({', '.join(columns)}) VALUES ({placeholders})",
        [record_id] + [values[column] for column in values],
    )
    return record_id


def update_record(conn: sqlite3.Connection, schema: RecordSchema, record_id: str, values: Dict[str, Any]) -> bool:
    if not values:
        return get_record(conn, schema, record_id) is not None
    assignments = ", ".join(f"{column} = ?" for column in values)
    cursor = conn.execute(
        f"UPDATE {schema.table} SET {assignments} WHERE id = ?",
        list(values.values()) + [record_id],
    )
    return cursor.rowcount > 0


def delete_record(conn: sqlite3.Connection, schema: RecordSchema, record_id: str) -> bool:
    cursor = conn.execute(f"DELETE FROM {schema.table} WHERE id = ?", (record_id,))
    return cursor.rowcount > 0


def fetch_invoice_items(conn: sqlite3.Connection, invoice_id: str) -> List[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM invoice_items WHERE invoice_id = ? ORDER BY created_at, rowid",
        (invoice_id,),
    ).fetchall()


def fetch_branding_business_name(conn: sqlite3.Connection) -> Optional[str]:
    row = conn.execute(
        "SELECT business_name FROM business_branding ORDER BY created_at, rowid LIMIT 1"
    ).fetchone()
    if row is None:
        return None
    return (row['business_name'] or '').strip() or None


def fetch_invoices_for_urgency(conn: sqlite3.Connection) -> List[InvoiceForUrgency]:
    rows = conn.execute(
        """
        SELECT i.id, i.invoice_number, COALESCE(c.name, '') AS client_name, i.grand_total,
               i.balance_due, i.payment_status, i.due_date, i.invoice_date
        FROM invoices i
        LEFT JOIN clients c ON c.id = i.client_id
        ORDER BY i.invoice_date, i.invoice_number
        """
    ).fetchall()
    return rows_to(InvoiceForUrgency, rows)


def fetch_projects_for_urgency(conn: sqlite3.Connection) -> List[ProjectForUrgency]:
    rows = conn.execute(
        """
        SELECT p.id, COALESCE(c.name, '') AS client_name, p.project_name, p.domain_name,
               p.domain_renewal_date, p.hosting_renewal_date, p.pending_amount, p.payment_status
        FROM projects p
        LEFT JOIN clients c ON c.id = p.client_id
        ORDER BY p.created_at, p.project_name
        """
    ).fetchall()
    return rows_to(ProjectForUrgency, rows)


def fetch_ai_subscriptions_for_urgency(conn: sqlite3.Connection) -> List[AISubscriptionForUrgency]:
    rows = conn.execute(
        "SELECT id, tool_name, cancel_by_date, manual_status, cost FROM ai_subscriptions ORDER BY created_at, tool_name"
    ).fetchall()
    return rows_to(AISubscriptionForUrgency, rows)


def fetch_action_items_for_urgency(conn: sqlite3.Connection) -> List[ActionItemForUrgency]:
    rows = conn.execute(
        "SELECT id, text, due_date, completed, context_type, context_id FROM action_items ORDER BY created_at, id"
    ).fetchall()
    return rows_to(ActionItemForUrgency, rows)


if __name__ == '__main__':
    init_db()
