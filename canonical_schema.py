"""Canonical record validation/coercion at the data-source boundary."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime

import pandas as pd

from shared import REJECTION_FIELDS


_NUMERIC_LOG_COLUMNS = [
    "actual_quantity",
    "ok_quantity",
    "target_quantity",
    "total_rejection_quantity",
    "rework_quantity",
    "actual_runtime_minutes",
    "total_downtime_minutes",
    "cycle_time_seconds",
    "setup_duration_minutes",
    "efficiency_percentage",
    *REJECTION_FIELDS,
]

_QUANTITY_LOG_COLUMNS = {
    "actual_quantity",
    "ok_quantity",
    "target_quantity",
    "total_rejection_quantity",
    "rework_quantity",
    *REJECTION_FIELDS,
}

_TEXT_LOG_COLUMNS = [
    "shift",
    "machine_id",
    "operator_id",
    "wo_id",
    "shift_start_time",
    "shift_end_time",
    "operation_code",
    "party_code",
    "product_description",
]

_TIMESTAMP_SETUP_COLUMNS = [
    "setup_start_time",
    "setup_end_time",
    "first_piece_approval_time",
]


@dataclass(frozen=True)
class DowntimeEvent:
    reason: str
    duration_minutes: float


@dataclass(frozen=True)
class ProductionLogEntry:
    log_date: str
    machine_id: str
    shift: str = ""
    operator_id: str | None = None
    work_order_id: str | None = None
    actual_quantity: int = 0
    ok_quantity: int = 0
    target_quantity: int = 0
    total_rejection_quantity: int = 0
    rework_quantity: int = 0
    actual_runtime_minutes: float = 0.0
    total_downtime_minutes: float = 0.0
    shift_start_time: str | None = None
    shift_end_time: str | None = None
    cycle_time_seconds: float = 0.0
    setup_duration_minutes: float = 0.0
    efficiency_percentage: float = 0.0
    rejections: dict = field(default_factory=dict)
    downtime_events: tuple = ()
    process_code: str | None = None
    customer_code: str | None = None
    item_description: str | None = None


@dataclass(frozen=True)
class SetupActivityEntry:
    setter_id: str
    machine_id: str | None = None
    work_order_id: str | None = None
    item_code: str | None = None
    activity_date: date | None = None
    setup_type: str = "standard"
    setup_start_time: datetime | None = None
    setup_end_time: datetime | None = None
    setup_duration_minutes: float = 0.0
    first_piece_approval_time: datetime | None = None
    record_id: str | None = None


def _text(value):
    """Stripped string, or None for missing/blank values."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    s = str(value).strip()
    return s or None


def _number(value):
    num = pd.to_numeric(value, errors="coerce")
    if pd.isna(num):
        return 0.0
    return max(float(num), 0.0)


def normalize_downtime_events(raw) -> tuple:
    """Parse an embedded downtime_events value into DowntimeEvent records.

    Accepts a list of mappings or its JSON text. Reason falls back
    reason -> type -> "Other"; duration falls back
    duration_minutes -> durationMinutes -> minutes -> 0.
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else []
        except json.JSONDecodeError:
            return ()
    if not isinstance(raw, (list, tuple)):
        return ()

    events = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        reason = _text(item.get("reason")) or _text(item.get("type")) or "Other"
        duration = 0.0
        for key in ("duration_minutes", "durationMinutes", "minutes"):
            if item.get(key) not in (None, ""):
                duration = _number(item[key])
                break
        events.append(DowntimeEvent(reason=reason, duration_minutes=duration))
    return tuple(events)


def normalize_production_logs(rows) -> list[ProductionLogEntry]:
    """Coerce raw daily_production_logs rows into ProductionLogEntry records.

    Absent or non-numeric quantities and minutes become 0, negatives are
    clipped to 0, and a missing ok_quantity falls back to actual_quantity.
    Rows with no machine_id are dropped.
    """
    rows = list(rows or [])
    if not rows:
        return []

    df = pd.DataFrame(rows)
    for col in _NUMERIC_LOG_COLUMNS:
        if col not in df.columns:
            df[col] = float("nan")
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["ok_quantity"] = df["ok_quantity"].fillna(df["actual_quantity"])
    df[_NUMERIC_LOG_COLUMNS] = df[_NUMERIC_LOG_COLUMNS].fillna(0).clip(lower=0)

    for col in _TEXT_LOG_COLUMNS:
        if col not in df.columns:
            df[col] = None
    if "log_date" not in df.columns:
        df["log_date"] = None
    # The recorded calendar date, whatever zone suffix a timestamp carries
    day = df["log_date"].map(lambda v: (_text(v) or "")[:10])
    df["log_date"] = (
        pd.to_datetime(day, errors="coerce", format="%Y-%m-%d")
        .dt.strftime("%Y-%m-%d")
        .fillna("")
    )
    if "downtime_events" not in df.columns:
        df["downtime_events"] = None

    entries = []
    for rec in df.to_dict("records"):
        machine_id = _text(rec["machine_id"])
        if machine_id is None:
            continue
        entries.append(ProductionLogEntry(
            log_date=rec["log_date"],
            machine_id=machine_id,
            shift=_text(rec["shift"]) or "",
            operator_id=_text(rec["operator_id"]),
            work_order_id=_text(rec["wo_id"]),
            actual_quantity=int(rec["actual_quantity"]),
            ok_quantity=int(rec["ok_quantity"]),
            target_quantity=int(rec["target_quantity"]),
            total_rejection_quantity=int(rec["total_rejection_quantity"]),
            rework_quantity=int(rec["rework_quantity"]),
            actual_runtime_minutes=float(rec["actual_runtime_minutes"]),
            total_downtime_minutes=float(rec["total_downtime_minutes"]),
            shift_start_time=_text(rec["shift_start_time"]),
            shift_end_time=_text(rec["shift_end_time"]),
            cycle_time_seconds=float(rec["cycle_time_seconds"]),
            setup_duration_minutes=float(rec["setup_duration_minutes"]),
            efficiency_percentage=float(rec["efficiency_percentage"]),
            rejections={
                label: int(rec[col]) for col, label in REJECTION_FIELDS.items()
            },
            downtime_events=normalize_downtime_events(rec["downtime_events"]),
            process_code=_text(rec["operation_code"]),
            customer_code=_text(rec["party_code"]),
            item_description=_text(rec["product_description"]),
        ))
    return entries


def _timestamp(value):
    if value is None or pd.isna(value):
        return None
    return value.to_pydatetime()


def normalize_setup_activity(rows) -> list[SetupActivityEntry]:
    """Coerce raw cnc_programmer_activity rows into SetupActivityEntry records.

    Timestamps become timezone-aware datetimes (naive values are read as
    UTC). A zero stored duration is derived from setup start/end when both
    are present.
    """
    rows = list(rows or [])
    if not rows:
        return []

    df = pd.DataFrame(rows)
    for col in _TIMESTAMP_SETUP_COLUMNS + ["activity_date"]:
        if col not in df.columns:
            df[col] = None
        df[col] = pd.to_datetime(df[col], errors="coerce", utc=True, format="ISO8601")
    if "setup_duration_minutes" not in df.columns:
        df["setup_duration_minutes"] = 0
    df["setup_duration_minutes"] = (
        pd.to_numeric(df["setup_duration_minutes"], errors="coerce")
        .fillna(0).clip(lower=0).astype(float)
    )

    derived = (df["setup_end_time"] - df["setup_start_time"]).dt.total_seconds() / 60
    mask = (df["setup_duration_minutes"] == 0) & derived.notna() & (derived > 0)
    df.loc[mask, "setup_duration_minutes"] = derived[mask]

    for col in ("id", "programmer_id", "machine_id", "wo_id", "item_code", "setup_type"):
        if col not in df.columns:
            df[col] = None

    entries = []
    for rec in df.to_dict("records"):
        activity = rec["activity_date"]
        entries.append(SetupActivityEntry(
            setter_id=_text(rec["programmer_id"]) or "unknown",
            machine_id=_text(rec["machine_id"]),
            work_order_id=_text(rec["wo_id"]),
            item_code=_text(rec["item_code"]),
            activity_date=None if pd.isna(activity) else activity.date(),
            setup_type=_text(rec["setup_type"]) or "standard",
            setup_start_time=_timestamp(rec["setup_start_time"]),
            setup_end_time=_timestamp(rec["setup_end_time"]),
            setup_duration_minutes=float(rec["setup_duration_minutes"]),
            first_piece_approval_time=_timestamp(rec["first_piece_approval_time"]),
            record_id=_text(rec["id"]),
        ))
    return entries
