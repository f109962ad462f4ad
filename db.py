"""
Data sources for the Production Performance Metrics Engine
==========================================================
Production logs, setup activity and name lookups, read from the hosted
Supabase store or from an in-memory / JSON snapshot with the same contract.

Both sources hand back normalized records (see canonical_schema.py) and
raise DataSourceError when the store cannot be read. Retrying is left to
the caller.

Connection: set SUPABASE_URL and SUPABASE_KEY as environment variables.
"""

from __future__ import annotations

import json
import os

from canonical_schema import normalize_production_logs, normalize_setup_activity
from shared import REJECTION_FIELDS, UNKNOWN_NAME

PRODUCTION_LOG_TABLE = "daily_production_logs"
SETUP_ACTIVITY_TABLE = "cnc_programmer_activity"
MACHINE_TABLE = "machines"
PEOPLE_TABLE = "people"

_LOG_COLUMNS = ", ".join([
    "id", "log_date", "shift",
    "machine_id", "operator_id", "wo_id",
    "actual_quantity", "ok_quantity", "target_quantity",
    "total_rejection_quantity", "rework_quantity",
    "actual_runtime_minutes", "total_downtime_minutes",
    "shift_start_time", "shift_end_time",
    "efficiency_percentage", "downtime_events",
    "party_code", "operation_code", "product_description",
    "cycle_time_seconds", "setup_duration_minutes",
    *REJECTION_FIELDS,
])

_SETUP_COLUMNS = ", ".join([
    "id", "programmer_id", "machine_id", "wo_id", "item_code",
    "activity_date", "setup_type",
    "setup_start_time", "setup_end_time", "setup_duration_minutes",
    "first_piece_approval_time",
])

# Production-log filters the store can apply itself, keyed by report option
LOG_FILTER_COLUMNS = {
    "machine_id": "machine_id",
    "operator_id": "operator_id",
    "shift": "shift",
    "process_code": "operation_code",
}


class DataSourceError(RuntimeError):
    """The record store could not be reached or queried."""


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------
_client = None


def get_client():
    """Get Supabase client. Returns None if not configured."""
    global _client
    if _client is not None:
        return _client

    url = os.environ.get("SUPABASE_URL", "")
    key = os.environ.get("SUPABASE_KEY", "")
    if not url or not key:
        return None

    from supabase import create_client
    _client = create_client(url, key)
    return _client


def is_connected():
    """Check if database is available."""
    return get_client() is not None


def _machine_label(row):
    code = row.get("machine_id") or ""
    name = row.get("name") or ""
    if code and name:
        return f"{code} - {name}"
    return code or name or UNKNOWN_NAME


def _unique(ids):
    return sorted({str(i) for i in ids if i})


# ---------------------------------------------------------------------------
# Supabase-backed source
# ---------------------------------------------------------------------------
class SupabaseSource:
    """Reads records from the hosted Supabase tables."""

    def __init__(self, client=None):
        self._client = client

    def _get_client(self):
        client = self._client or get_client()
        if client is None:
            raise DataSourceError(
                "Supabase is not configured: set SUPABASE_URL and SUPABASE_KEY."
            )
        return client

    def _execute(self, query, table):
        try:
            resp = query.execute()
        except Exception as exc:
            raise DataSourceError(f"Failed to read {table}: {exc}") from exc
        return resp.data or []

    def fetch_production_logs(self, date_from, date_to, filters=None):
        query = (
            self._get_client()
            .table(PRODUCTION_LOG_TABLE)
            .select(_LOG_COLUMNS)
            .gte("log_date", date_from.isoformat())
            .lte("log_date", date_to.isoformat())
            .order("log_date")
        )
        for option, value in (filters or {}).items():
            if value:
                query = query.eq(LOG_FILTER_COLUMNS[option], value)
        return normalize_production_logs(self._execute(query, PRODUCTION_LOG_TABLE))

    def fetch_setup_activity(self, date_from, date_to, machine_id=None):
        query = (
            self._get_client()
            .table(SETUP_ACTIVITY_TABLE)
            .select(_SETUP_COLUMNS)
            .gte("activity_date", date_from.isoformat())
            .lte("activity_date", date_to.isoformat())
            .order("activity_date")
        )
        if machine_id:
            query = query.eq("machine_id", machine_id)
        return normalize_setup_activity(self._execute(query, SETUP_ACTIVITY_TABLE))

    def resolve_names(self, machine_ids, person_ids):
        client = self._get_client()
        names = {}
        machine_ids = _unique(machine_ids)
        person_ids = _unique(person_ids)
        if machine_ids:
            query = client.table(MACHINE_TABLE).select("id, machine_id, name").in_("id", machine_ids)
            for row in self._execute(query, MACHINE_TABLE):
                names[str(row["id"])] = _machine_label(row)
        if person_ids:
            query = client.table(PEOPLE_TABLE).select("id, full_name").in_("id", person_ids)
            for row in self._execute(query, PEOPLE_TABLE):
                names[str(row["id"])] = row.get("full_name") or UNKNOWN_NAME
        for i in machine_ids + person_ids:
            names.setdefault(i, UNKNOWN_NAME)
        return names


# ---------------------------------------------------------------------------
# Snapshot source (offline runs, tests)
# ---------------------------------------------------------------------------
class InMemorySource:
    """Serves raw table rows held in memory, filtered the way the store would."""

    def __init__(self, production_logs=None, setup_activity=None, machines=None, people=None):
        self._logs = normalize_production_logs(production_logs or [])
        self._setups = normalize_setup_activity(setup_activity or [])
        self._machines = {str(m["id"]): _machine_label(m) for m in machines or []}
        self._people = {
            str(p["id"]): p.get("full_name") or UNKNOWN_NAME for p in people or []
        }

    @classmethod
    def from_json(cls, path):
        """Load a snapshot file with production_logs / setup_activity / machines / people lists."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                snapshot = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise DataSourceError(f"Cannot read snapshot {path}: {exc}") from exc
        return cls(
            production_logs=snapshot.get("production_logs", []),
            setup_activity=snapshot.get("setup_activity", []),
            machines=snapshot.get("machines", []),
            people=snapshot.get("people", []),
        )

    def fetch_production_logs(self, date_from, date_to, filters=None):
        start, end = date_from.isoformat(), date_to.isoformat()
        logs = [e for e in self._logs if start <= e.log_date <= end]
        for option, value in (filters or {}).items():
            if value:
                logs = [e for e in logs if getattr(e, option) == value]
        return logs

    def fetch_setup_activity(self, date_from, date_to, machine_id=None):
        return [
            s for s in self._setups
            if s.activity_date is not None and date_from <= s.activity_date <= date_to
            and (not machine_id or s.machine_id == machine_id)
        ]

    def resolve_names(self, machine_ids, person_ids):
        names = {}
        for i in _unique(machine_ids):
            names[i] = self._machines.get(i, UNKNOWN_NAME)
        for i in _unique(person_ids):
            names[i] = self._people.get(i, UNKNOWN_NAME)
        return names
