"""
Bulk import of aggregate statistics (legacy paper records, spreadsheets).

Rows are parsed tolerantly: column names are matched against alias sets,
bad rows are skipped with a warning, and everything that survives is
inserted in one transaction.
"""
from __future__ import annotations

import csv
import io
import json
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from healthcast.exceptions import PersistenceWriteError
from healthcast.models.area import Area
from healthcast.models.imported_statistic import ImportedStatistic
from healthcast.schemas.imports import ImportStats

logger = structlog.get_logger(__name__)

MAX_WARNINGS = 50


# ---------------------------------------------------------------------------
# Parsers (bytes -> row dicts)
# ---------------------------------------------------------------------------

def iter_csv_bytes(file_bytes: bytes) -> Iterable[Dict[str, Any]]:
    """Yield dictionaries from CSV bytes (UTF-8/BOM tolerant)."""
    text = file_bytes.decode("utf-8-sig", errors="replace")
    for row in csv.DictReader(io.StringIO(text)):
        if not any(str(v or "").strip() for v in row.values()):
            continue
        yield row


def iter_json_bytes(file_bytes: bytes) -> Iterable[Dict[str, Any]]:
    """
    Yield dictionaries from JSON bytes.
    Supports:
      - JSON array: [ {...}, {...} ]
      - a single JSON object
      - NDJSON: one JSON object per line
    """
    s = file_bytes.decode("utf-8-sig", errors="replace").strip()
    if not s:
        return
    try:
        obj = json.loads(s)
    except json.JSONDecodeError:
        obj = None
    if isinstance(obj, dict):
        yield obj
        return
    if isinstance(obj, list):
        for item in obj:
            if isinstance(item, dict):
                yield item
        return

    for ln in s.splitlines():
        ln = ln.strip()
        if not ln:
            continue
        try:
            item = json.loads(ln)
        except json.JSONDecodeError:
            yield {"__parse_error__": ln}
            continue
        if isinstance(item, dict):
            yield item


# ---------------------------------------------------------------------------
# Row cleaning (tolerant)
# ---------------------------------------------------------------------------

_DATE_KEYS = {"date", "record_date", "day", "month", "period"}
_COUNT_KEYS = {"count", "total", "value", "cases", "visits", "quantity"}
_AREA_KEYS = {"area_id", "area", "barangay", "location"}
_PROVENANCE_KEYS = {"provenance", "source", "origin"}
_NOTE_KEYS = {"note", "notes", "remarks", "comment"}


def _find_key(d: Dict[str, Any], pool: set[str]) -> Optional[str]:
    for k in d.keys():
        if k and k.strip().lower() in pool:
            return k
    return None


def _text(row: Dict[str, Any], pool: set[str]) -> Optional[str]:
    key = _find_key(row, pool)
    if key is None or row.get(key) in (None, ""):
        return None
    return str(row[key]).strip() or None


def _coerce_date(v: Any) -> Optional[date]:
    if v is None or str(v).strip() == "":
        return None
    ts = pd.to_datetime(v, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


def _coerce_count(v: Any) -> Optional[int]:
    if v is None or str(v).strip() == "":
        return None
    num = pd.to_numeric(v, errors="coerce")
    if pd.isna(num) or not np.isfinite(num) or num < 0 or float(num) != int(num):
        return None
    return int(num)


def _resolve_area(raw: Optional[str], areas: Dict[str, int]) -> Tuple[Optional[int], bool]:
    """Return (area_id, ok). A blank area means system-wide."""
    if raw is None:
        return None, True
    if raw.isdigit() and int(raw) in areas.values():
        return int(raw), True
    area_id = areas.get(raw.lower())
    return area_id, area_id is not None


def _try_clean_row(row: Dict[str, Any], areas: Dict[str, int]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Return (clean_row | None, warning | None)."""
    if "__parse_error__" in row:
        return None, "JSON parse error in NDJSON line"

    date_key = _find_key(row, _DATE_KEYS)
    count_key = _find_key(row, _COUNT_KEYS)
    record_date = _coerce_date(row.get(date_key)) if date_key else None
    count = _coerce_count(row.get(count_key)) if count_key else None

    if record_date is None:
        return None, f"Invalid/missing date ({date_key or 'date'})"
    if count is None:
        return None, f"Invalid/missing non-negative integer count ({count_key or 'count'})"

    area_raw = _text(row, _AREA_KEYS)
    area_id, area_ok = _resolve_area(area_raw, areas)
    if not area_ok:
        return None, f"Unknown area: {area_raw}"

    return {
        "record_date": record_date,
        "count": count,
        "area_id": area_id,
        "provenance": _text(row, _PROVENANCE_KEYS),
        "note": _text(row, _NOTE_KEYS),
    }, None


# ---------------------------------------------------------------------------
# Main processor used by /api/imports/statistics
# ---------------------------------------------------------------------------

def process_rows(
    rows_iter: Iterable[Dict[str, Any]],
    *,
    subject_id: int,
    db: Session,
    default_provenance: Optional[str] = None,
) -> ImportStats:
    warnings: List[str] = []
    records: List[ImportedStatistic] = []
    skipped = 0
    total = 0
    min_date: Optional[date] = None
    max_date: Optional[date] = None

    areas = {name.lower(): int(area_id) for area_id, name in db.execute(select(Area.id, Area.name)).all()}

    for raw in rows_iter:
        clean, warn = _try_clean_row(raw or {}, areas)
        if warn:
            skipped += 1
            if len(warnings) < MAX_WARNINGS:
                warnings.append(warn)
            continue

        d = clean["record_date"]
        min_date = d if min_date is None or d < min_date else min_date
        max_date = d if max_date is None or d > max_date else max_date
        total += clean["count"]
        records.append(
            ImportedStatistic(
                subject_id=subject_id,
                area_id=clean["area_id"],
                record_date=d,
                count=clean["count"],
                provenance=clean["provenance"] or default_provenance,
                note=clean["note"],
            )
        )

    try:
        db.add_all(records)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("imports.write_failed", subject_id=subject_id, rows=len(records), error=str(exc))
        raise PersistenceWriteError(f"Could not store imported statistics: {exc.__class__.__name__}") from exc

    logger.info("imports.ingested", subject_id=subject_id, ingested=len(records), skipped=skipped)
    return ImportStats(
        subject_id=subject_id,
        ingested_rows=len(records),
        skipped_rows=skipped,
        total_count=total,
        warnings=warnings,
        min_date=min_date,
        max_date=max_date,
    )


def ingest_file(
    db: Session,
    subject_id: int,
    file_bytes: bytes,
    content_type: str,
    filename: Optional[str] = None,
) -> ImportStats:
    """Detect CSV vs JSON/NDJSON from content_type (or filename) and ingest."""
    ctype = (content_type or "").lower()
    is_json = "json" in ctype or (filename or "").lower().endswith((".json", ".ndjson"))
    rows_iter = iter_json_bytes(file_bytes) if is_json else iter_csv_bytes(file_bytes)
    return process_rows(rows_iter, subject_id=subject_id, db=db, default_provenance=filename)
