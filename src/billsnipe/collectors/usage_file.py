"""Hourly usage importer.

Reads usage exports in two formats:
- CSV with header: timestamp, kwh
- JSON: {"data": [{"timestamp": "...", "kWh": 1.2}, ...]}
"""

import csv
import json
import logging
import math
import sqlite3
from datetime import datetime
from pathlib import Path

from ..db import get_connection
from ..exceptions import ValidationError
from ..models import UsageReading

logger = logging.getLogger(__name__)


def parse_reading(timestamp: str | None, kwh, where: str) -> UsageReading:
    """Validate one raw reading."""
    if not timestamp or kwh in (None, ""):
        raise ValidationError(f"Missing timestamp or kWh in {where}")

    try:
        # Convert trailing Z to +00:00 for fromisoformat
        parsed_ts = datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid timestamp {timestamp!r} in {where}")
    # Stored as meter wall-clock time; the offset is dropped
    parsed_ts = parsed_ts.replace(tzinfo=None)

    try:
        value = float(kwh)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid kWh {kwh!r} in {where}")
    if value < 0 or math.isnan(value) or math.isinf(value):
        raise ValidationError(f"kWh must be a non-negative number in {where}")

    return UsageReading(timestamp=parsed_ts, kwh=value)


def parse_csv(csv_path: Path) -> list[UsageReading]:
    """Parse a usage CSV export file."""
    readings = []
    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            readings.append(
                parse_reading(row.get("timestamp"), row.get("kwh"), f"{csv_path.name} line {line_no}")
            )
    return readings


def parse_json(json_path: Path) -> list[UsageReading]:
    """Parse a usage JSON export file."""
    with open(json_path) as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {json_path.name}: {e}")

    records = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise ValidationError(f"Expected a list of readings in {json_path.name}")

    readings = []
    for i, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValidationError(f"Record {i} in {json_path.name} is not an object")
        kwh = record.get("kWh", record.get("kwh"))
        readings.append(parse_reading(record.get("timestamp"), kwh, f"{json_path.name} record {i}"))
    return readings


def save_readings(account_id: str, readings: list[UsageReading], db_path: Path | None = None) -> dict:
    """Save usage readings for an account.

    Returns dict with 'imported' and 'skipped' counts.
    """
    imported = 0
    skipped = 0

    with get_connection(db_path) as conn:
        for reading in readings:
            try:
                conn.execute(
                    """INSERT INTO usage_readings (account_id, timestamp, kwh)
                       VALUES (?, ?, ?)""",
                    (account_id, reading.timestamp.isoformat(), reading.kwh),
                )
                imported += 1
            except sqlite3.IntegrityError:
                # Duplicate (UNIQUE constraint)
                skipped += 1

        conn.commit()

    logger.info("Imported %d reading(s) for %s, skipped %d", imported, account_id, skipped)
    return {"imported": imported, "skipped": skipped}


def import_from_file(account_id: str, path: Path, db_path: Path | None = None) -> dict:
    """Import a CSV or JSON usage export, chosen by file extension.

    Returns dict with 'imported' and 'skipped' counts.
    """
    if path.suffix.lower() == ".json":
        readings = parse_json(path)
    else:
        readings = parse_csv(path)
    return save_readings(account_id, readings, db_path)
