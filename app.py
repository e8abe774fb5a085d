import sqlite3
import socket
import sys
import traceback
import webbrowser
from threading import Timer
from typing import Any, Dict, Tuple

from dotenv import load_dotenv
from flask import Flask, jsonify, request

# Load environment variables from .env file before the data root is resolved
load_dotenv()

from database import (
    delete_record,
    fetch_action_items_for_urgency,
    fetch_ai_subscriptions_for_urgency,
    fetch_branding_business_name,
    fetch_invoice_items,
    fetch_invoices_for_urgency,
    fetch_projects_for_urgency,
    get_db_connection,
    get_record,
    init_db,
    insert_record,
    list_records,
    update_record,
)
from services.date_expiry import REMINDER_STAGES, parse_iso_date
from services.entities import to_snake
from services.payment_reminder import compose_payment_reminder
from services.records import RecordValidationError, get_record_registry
from services.reminders import REMINDER_KINDS, get_reminder_ledger, next_reminder
from services.settings import (
    all_clear_threshold,
    business_name,
    load_settings,
    resolve_timezone_name,
    server_port,
    settings_path,
    today_in_timezone,
    write_json_file,
)
from services.urgency import (
    compute_all_urgency_items,
    config_from_overrides,
    get_top_urgency_item,
    is_all_clear,
)
from services.vitals import get_ai_spend_summary, get_financial_vitals

# --- App Initialization ---
app = Flask(__name__)
app.json.sort_keys = False

_db_bootstrapped = False

SETTINGS_KEYS = ('timezone', 'businessName', 'allClearThreshold', 'urgency')


@app.before_request
def _ensure_database_initialized():
    """Guarantee the SQLite schema exists before serving any request."""
    global _db_bootstrapped
    if _db_bootstrapped:
        return
    try:
        init_db()
        _db_bootstrapped = True
    except sqlite3.Error as exc:
        app.logger.exception("Failed to initialize database before request: %s", exc)


def _load_attention_inputs(conn: sqlite3.Connection) -> Tuple[list, list, list, list]:
    return (
        fetch_invoices_for_urgency(conn),
        fetch_projects_for_urgency(conn),
        fetch_ai_subscriptions_for_urgency(conn),
        fetch_action_items_for_urgency(conn),
    )


def _resolve_resource(resource: str):
    registry = get_record_registry()
    if not registry.has(resource):
        return None
    return registry.get(resource)


def _json_payload() -> Dict[str, Any]:
    payload = request.get_json(force=True, silent=True)
    return payload if isinstance(payload, dict) else {}


@app.route('/api/dashboard', methods=['GET'])
def get_dashboard():
    settings = load_settings()
    today = today_in_timezone(resolve_timezone_name(settings))
    conn = get_db_connection()
    try:
        invoices, projects, subscriptions, actions = _load_attention_inputs(conn)
    except sqlite3.Error as e:
        app.logger.error(f"DB error dashboard: {e}")
        return jsonify({"status": "error", "message": "Failed to load dashboard data."}), 500
    finally:
        conn.close()

    config = config_from_overrides(settings.get('urgency'))
    items = compute_all_urgency_items(invoices, projects, subscriptions, actions, config=config, today=today)
    top_item = get_top_urgency_item(items)
    reminder = next_reminder(projects, subscriptions, get_reminder_ledger(), today=today)
    return jsonify({
        "today": today.isoformat(),
        "items": [item.to_dict() for item in items],
        "topItem": top_item.to_dict() if top_item else None,
        "allClear": is_all_clear(items, all_clear_threshold(settings)),
        "vitals": get_financial_vitals(invoices, subscriptions, today=today).to_dict(),
        "reminder": reminder.to_dict() if reminder else None,
    })


@app.route('/api/reminders/next', methods=['GET'])
def get_next_reminder():
    today = today_in_timezone()
    conn = get_db_connection()
    try:
        projects = fetch_projects_for_urgency(conn)
        subscriptions = fetch_ai_subscriptions_for_urgency(conn)
    except sqlite3.Error as e:
        app.logger.error(f"DB error loading reminders: {e}")
        return jsonify({"status": "error", "message": "Failed to load reminders."}), 500
    finally:
        conn.close()
    reminder = next_reminder(projects, subscriptions, get_reminder_ledger(), today=today)
    return jsonify({"reminder": reminder.to_dict() if reminder else None})


@app.route('/api/reminders/shown', methods=['POST'])
def mark_reminder_as_shown():
    payload = _json_payload()
    key = str(payload.get('key') or '').strip()
    parts = key.split(':')
    valid_stages = {str(stage) for stage in REMINDER_STAGES}
    if len(parts) != 3 or parts[0] not in REMINDER_KINDS or not parts[1] or parts[2] not in valid_stages:
        return jsonify({"message": "key must look like <kind>:<id>:<stage>."}), 400
    if payload.get('date'):
        shown_on = parse_iso_date(payload['date'])
        if shown_on is None:
            return jsonify({"message": "date must be an ISO date (YYYY-MM-DD)."}), 400
        today_iso = shown_on.isoformat()
    else:
        today_iso = today_in_timezone().isoformat()
    try:
        get_reminder_ledger().mark_reminder_shown(key, today_iso)
    except OSError as exc:
        app.logger.error("Failed to persist reminder log entry %s: %s", key, exc)
        return jsonify({"status": "error", "message": "Failed to record reminder."}), 500
    app.logger.info("Reminder %s marked as shown for %s", key, today_iso)
    return jsonify({"key": key, "date": today_iso}), 200


@app.route('/api/ai-subscriptions/summary', methods=['GET'])
def get_ai_subscription_summary():
    conn = get_db_connection()
    try:
        subscriptions = fetch_ai_subscriptions_for_urgency(conn)
    except sqlite3.Error as e:
        app.logger.error(f"DB error AI summary: {e}")
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()
    return jsonify(get_ai_spend_summary(subscriptions, today=today_in_timezone()).to_dict())


@app.route('/api/invoices/<string:invoice_id>/reminder-email', methods=['GET'])
def get_invoice_reminder_email(invoice_id):
    schema = get_record_registry().get('invoices')
    conn = get_db_connection()
    try:
        row = get_record(conn, schema, invoice_id)
        branded_name = fetch_branding_business_name(conn)
    except sqlite3.Error as e:
        app.logger.error(f"DB error fetching invoice {invoice_id}: {e}")
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()
    if row is None:
        return jsonify({"message": "Invoice not found."}), 404
    email = compose_payment_reminder(dict(row), branded_name or business_name())
    return jsonify(email.to_dict())


@app.route('/api/<string:resource>', methods=['GET'])
def list_resource(resource):
    schema = _resolve_resource(resource)
    if schema is None:
        return jsonify({"message": f"Unknown resource '{resource}'."}), 404
    conn = get_db_connection()
    try:
        filters = {to_snake(key): value for key, value in request.args.items()}
        rows = list_records(conn, schema, filters)
        return jsonify({"items": [schema.to_payload(row) for row in rows]})
    except sqlite3.Error as e:
        app.logger.error(f"DB error listing {resource}: {e}")
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()


@app.route('/api/<string:resource>', methods=['POST'])
def create_resource(resource):
    schema = _resolve_resource(resource)
    if schema is None:
        return jsonify({"message": f"Unknown resource '{resource}'."}), 404
    payload = _json_payload()
    try:
        values = schema.validate(payload)
    except RecordValidationError as exc:
        return jsonify({"message": "Validation failed.", "errors": exc.errors}), 400

    conn = get_db_connection()
    try:
        record_id = insert_record(conn, schema, values, payload.get('id'))
        conn.commit()
        row = get_record(conn, schema, record_id)
        app.logger.info(f"Created {schema.entity_type} {record_id}")
        return jsonify(schema.to_payload(row)), 201
    except sqlite3.IntegrityError as e:
        conn.rollback()
        return jsonify({"message": f"Conflicts with an existing record: {e}"}), 409
    except sqlite3.Error as e:
        conn.rollback()
        app.logger.error(f"DB error creating {schema.entity_type}: {e}")
        app.logger.error(traceback.format_exc())
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()


@app.route('/api/<string:resource>/<string:record_id>', methods=['GET'])
def get_resource(resource, record_id):
    schema = _resolve_resource(resource)
    if schema is None:
        return jsonify({"message": f"Unknown resource '{resource}'."}), 404
    conn = get_db_connection()
    line_items = None
    try:
        row = get_record(conn, schema, record_id)
        if row is not None and schema.table == 'invoices':
            item_schema = get_record_registry().get('invoice-items')
            line_items = [item_schema.to_payload(item) for item in fetch_invoice_items(conn, record_id)]
    except sqlite3.Error as e:
        app.logger.error(f"DB error fetching {schema.entity_type} {record_id}: {e}")
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()
    if row is None:
        return jsonify({"message": "Record not found."}), 404
    payload = schema.to_payload(row)
    if line_items is not None:
        payload['lineItems'] = line_items
    return jsonify(payload)


@app.route('/api/<string:resource>/<string:record_id>', methods=['PUT'])
def update_resource(resource, record_id):
    schema = _resolve_resource(resource)
    if schema is None:
        return jsonify({"message": f"Unknown resource '{resource}'."}), 404
    try:
        values = schema.validate(_json_payload(), partial=True)
    except RecordValidationError as exc:
        return jsonify({"message": "Validation failed.", "errors": exc.errors}), 400

    conn = get_db_connection()
    try:
        if not update_record(conn, schema, record_id, values):
            return jsonify({"message": "Record not found."}), 404
        conn.commit()
        return jsonify(schema.to_payload(get_record(conn, schema, record_id)))
    except sqlite3.IntegrityError as e:
        conn.rollback()
        return jsonify({"message": f"Conflicts with an existing record: {e}"}), 409
    except sqlite3.Error as e:
        conn.rollback()
        app.logger.error(f"DB error updating {schema.entity_type} {record_id}: {e}")
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()


@app.route('/api/<string:resource>/<string:record_id>', methods=['DELETE'])
def delete_resource(resource, record_id):
    schema = _resolve_resource(resource)
    if schema is None:
        return jsonify({"message": f"Unknown resource '{resource}'."}), 404
    conn = get_db_connection()
    try:
        if not delete_record(conn, schema, record_id):
            return jsonify({"message": "Record not found."}), 404
        conn.commit()
        app.logger.info(f"Deleted {schema.entity_type} {record_id}")
        return jsonify({"status": "success"}), 200
    except sqlite3.Error as e:
        conn.rollback()
        app.logger.error(f"DB error deleting {schema.entity_type} {record_id}: {e}")
        return jsonify({"status": "error"}), 500
    finally:
        conn.close()


@app.route('/api/settings', methods=['GET'])
def get_settings():
    settings = load_settings()
    return jsonify({
        "timezone": resolve_timezone_name(settings),
        "businessName": business_name(settings),
        "allClearThreshold": all_clear_threshold(settings),
        "urgency": settings.get('urgency') or {},
    })


@app.route('/api/settings', methods=['POST'])
def update_settings():
    payload = request.json
    if not payload:
        return jsonify({"message": "Request must be JSON"}), 400
    existing_settings = load_settings()
    for key in SETTINGS_KEYS:
        if key in payload:
            existing_settings[key] = payload[key]
    write_json_file(settings_path(), existing_settings)
    return jsonify({"message": "Settings updated."}), 200


@app.route('/')
def home():
    return jsonify({"name": "NBK Control Center", "dashboard": "/api/dashboard"})


def open_browser(port):
    webbrowser.open_new(f"http://127.0.0.1:{port}/api/dashboard")


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('127.0.0.1', port)) == 0


def main():
    port = server_port()
    if is_port_in_use(port):
        print(f"Port {port} is already in use. Opening browser to existing instance.")
        open_browser(port)
        sys.exit(0)
    else:
        print(f"Port {port} is free. Starting new server.")
        Timer(1, open_browser, args=(port,)).start()
        app.run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    init_db()
    main()
