"""Settings-file and environment configuration for the control center."""

from __future__ import annotations

import json
import logging
import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pytz

from data_paths import ensure_data_root

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
DEFAULT_BUSINESS_NAME = "NBK Business Solutions"
DEFAULT_ALL_CLEAR_THRESHOLD = 200
DEFAULT_PORT = 5002


def settings_path() -> Path:
    return ensure_data_root() / SETTINGS_FILENAME


def read_json_file(file_path: Path) -> Dict[str, Any]:
    """Read a JSON object from disk, treating missing or corrupt files as empty."""
    if not os.path.exists(file_path) or os.path.getsize(file_path) == 0:
        return {}
    with open(file_path, "r", encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except json.JSONDecodeError:
            logger.error("JSONDecodeError for %s", file_path)
            return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring non-object JSON payload in %s", file_path)
        return {}
    return payload


def write_json_file(file_path: Path, data: Dict[str, Any]) -> None:
    with open(file_path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=4, ensure_ascii=False)


def load_settings() -> Dict[str, Any]:
    return read_json_file(settings_path())


def resolve_timezone_name(settings: Optional[Dict[str, Any]] = None) -> str:
    if settings is None:
        settings = load_settings()
    fallback = os.environ.get("NBK_TIMEZONE") or "UTC"
    tz_value = str(settings.get("timezone") or fallback).strip() or "UTC"
    try:
        pytz.timezone(tz_value)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r in settings; falling back to UTC", tz_value)
        tz_value = "UTC"
    return tz_value


def today_in_timezone(timezone_name: Optional[str] = None) -> date:
    """Return the current calendar date in the configured timezone."""
    tz = pytz.timezone(timezone_name or resolve_timezone_name())
    return datetime.now(tz).date()


def business_name(settings: Optional[Dict[str, Any]] = None) -> str:
    if settings is None:
        settings = load_settings()
    return str(settings.get("businessName") or DEFAULT_BUSINESS_NAME)


def all_clear_threshold(settings: Optional[Dict[str, Any]] = None) -> int:
    if settings is None:
        settings = load_settings()
    value = settings.get("allClearThreshold", DEFAULT_ALL_CLEAR_THRESHOLD)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid allClearThreshold %r; using %s", value, DEFAULT_ALL_CLEAR_THRESHOLD)
        return DEFAULT_ALL_CLEAR_THRESHOLD


def server_port() -> int:
    raw = os.environ.get("NBK_PORT")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid NBK_PORT %r; using %s", raw, DEFAULT_PORT)
        return DEFAULT_PORT


def resolve_today(today: Optional[date] = None) -> date:
    return today if today is not None else today_in_timezone()
