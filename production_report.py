"""
Production Performance Report
=============================
Builds the full performance report for one request:

  1. resolve the date window (today / week / month / custom)
  2. fetch production logs, setup activity and display names
  3. aggregate the logs in one pass and analyze downtime and setters
  4. finalize percentages, rankings, offenders and cost estimates
  5. assemble the report dict

Production logs are required: a DataSourceError from that fetch propagates
to the caller. Setup activity and names are enrichment: if they cannot be
read the matching sections come back empty/"Unknown" and a
PartialDataWarning is raised through warnings.warn and listed in the
report's "warnings".
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from warnings import warn

from db import DataSourceError
from downtime_analysis import analyze_downtime
from performance_metrics import (
    LogAggregation,
    aggregate_logs,
    daily_trend,
    estimate_financial_impact,
    item_performance,
    machine_performance,
    operator_performance,
    process_performance,
    rejection_by_item,
    rejection_pareto,
    shift_key,
    shift_performance,
    summarize_capacity,
    summarize_efficiency,
)
from rankings import repeat_downtime_offenders, repeat_rejection_offenders
from setter_efficiency import analyze_setters, setup_loss_analysis, summarize_setters
from shared import UNKNOWN_NAME, MetricsConfig

PERIODS = ("today", "week", "month", "custom")


class PartialDataWarning(UserWarning):
    """An optional data source was unavailable; part of the report is empty."""


@dataclass
class ReportOptions:
    period: str = "custom"
    start_date: date | str | None = None
    end_date: date | str | None = None
    machine_id: str | None = None
    operator_id: str | None = None
    process_code: str | None = None
    item_filter: str | None = None
    shift: str | None = None


def _active(value):
    """Filter values of None, "" and "all" mean no filter."""
    return bool(value) and value != "all"


def _as_date(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValueError(f"Invalid date {value!r}; expected YYYY-MM-DD") from None


# ---------------------------------------------------------------------------
# Date window
# ---------------------------------------------------------------------------
def resolve_date_range(period="custom", start=None, end=None, today=None,
                       trailing_days=7):
    """Return (start, end) dates for a reporting period.

    week is the Monday-start week containing today, month the calendar
    month. custom (and any unrecognized period) uses the given dates,
    defaulting to the trailing *trailing_days* ending today.
    """
    today = _as_date(today) or date.today()
    if period == "today":
        return today, today
    if period == "week":
        monday = today - timedelta(days=today.weekday())
        return monday, monday + timedelta(days=6)
    if period == "month":
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=1), today.replace(day=last_day)

    start_date = _as_date(start) or today - timedelta(days=trailing_days - 1)
    end_date = _as_date(end) or today
    if start_date > end_date:
        raise ValueError(f"Start date {start_date} is after end date {end_date}")
    return start_date, end_date


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------
def extract_filter_options(entries, names=None):
    """Distinct machines, operators, items, processes and shifts in *entries*."""
    names = names or {}
    machine_ids = {e.machine_id for e in entries}
    operator_ids = {e.operator_id for e in entries if e.operator_id}

    def _named(ids):
        rows = [{"id": i, "name": names.get(i, UNKNOWN_NAME)} for i in ids]
        return sorted(rows, key=lambda r: (r["name"], r["id"]))

    return {
        "available_machines": _named(machine_ids),
        "available_operators": _named(operator_ids),
        "available_items": sorted({e.item_description for e in entries if e.item_description}),
        "available_processes": sorted({e.process_code for e in entries if e.process_code}),
        "available_shifts": sorted({e.shift for e in entries if e.shift}),
    }


def apply_filters(entries, options: ReportOptions):
    """Equality filters on machine/operator/process/shift, substring match on item."""
    out = list(entries)
    if _active(options.machine_id):
        out = [e for e in out if e.machine_id == options.machine_id]
    if _active(options.operator_id):
        out = [e for e in out if e.operator_id == options.operator_id]
    if _active(options.process_code):
        out = [e for e in out if e.process_code == options.process_code]
    if _active(options.item_filter):
        out = [e for e in out if options.item_filter in (e.item_description or "")]
    if _active(options.shift):
        out = [e for e in out if e.shift == options.shift]
    return out


# ---------------------------------------------------------------------------
# Optional sources
# ---------------------------------------------------------------------------
def _degrade(messages, message):
    messages.append(message)
    warn(message, PartialDataWarning, stacklevel=3)


def _fetch_setups(source, start, end, machine_id, messages):
    try:
        return list(source.fetch_setup_activity(start, end, machine_id if _active(machine_id) else None))
    except DataSourceError as exc:
        _degrade(messages, f"Setup activity unavailable; setter sections are empty ({exc})")
        return []


def _resolve_names(source, logs, setups, messages):
    machine_ids = {e.machine_id for e in logs} | {s.machine_id for s in setups if s.machine_id}
    person_ids = {e.operator_id for e in logs if e.operator_id}
    person_ids |= {s.setter_id for s in setups if s.setter_id != "unknown"}
    try:
        return dict(source.resolve_names(sorted(machine_ids), sorted(person_ids)))
    except DataSourceError as exc:
        _degrade(messages, f"Name lookup unavailable; names shown as {UNKNOWN_NAME} ({exc})")
        return {}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------
def empty_report(date_range, config: MetricsConfig | None = None):
    """A complete report with every number at zero and every list empty."""
    config = config or MetricsConfig()
    agg = LogAggregation()
    return {
        "capacity": summarize_capacity(agg),
        "efficiency": summarize_efficiency(agg),
        "downtime_losses": [],
        "downtime_by_machine": [],
        "downtime_by_shift": [],
        "downtime_by_category": [],
        "operators": [],
        "machines": [],
        "items": [],
        "processes_by_productivity": [],
        "daily_trend": [],
        "shift_performance": [],
        "rejection_pareto": [],
        "rejection_by_item": [],
        "setters": [],
        "setup_records": [],
        "setter_summary": summarize_setters([], []),
        "financial_impact": estimate_financial_impact(0, 0, 0, config),
        "shift_comparison": [],
        "repeat_downtime_offenders": [],
        "repeat_rejection_offenders": [],
        "setup_loss_analysis": setup_loss_analysis(0, 0, []),
        "available_machines": [],
        "available_operators": [],
        "available_items": [],
        "available_processes": [],
        "available_shifts": [],
        "log_count": 0,
        "date_range": dict(date_range),
        "warnings": [],
    }


def build_production_report(source, options: ReportOptions | None = None,
                            config: MetricsConfig | None = None, today=None) -> dict:
    """Compute the production performance report for one request.

    *source* provides fetch_production_logs, fetch_setup_activity and
    resolve_names (see db.py). *today* pins the clock for period
    resolution.
    """
    options = options or ReportOptions()
    config = config or MetricsConfig()

    start, end = resolve_date_range(options.period, options.start_date, options.end_date,
                                    today=today, trailing_days=config.trailing_window_days)
    date_range = {"start": start.isoformat(), "end": end.isoformat()}

    logs = list(source.fetch_production_logs(start, end))
    if not logs:
        return empty_report(date_range, config)

    messages: list[str] = []
    setups = _fetch_setups(source, start, end, options.machine_id, messages)
    names = _resolve_names(source, logs, setups, messages)

    # Dropdown options come from the whole window, before filtering
    filter_options = extract_filter_options(logs, names)
    filtered = apply_filters(logs, options)

    agg = aggregate_logs(filtered, config)
    capacity = summarize_capacity(agg)
    efficiency = summarize_efficiency(agg)
    downtime = analyze_downtime(
        filtered,
        total_downtime_minutes=capacity["total_downtime_minutes"],
        total_paid_capacity_minutes=capacity["total_paid_capacity_minutes"],
        machine_names=names,
        shift_key=shift_key,
    )
    setter = analyze_setters(setups, names, config.repeat_setup_window_hours)

    rejections_by_item = rejection_by_item(agg.rejections_by_item)

    report = {
        "capacity": capacity,
        "efficiency": efficiency,
        **downtime,
        "operators": operator_performance(agg.groups["operator"], names),
        "machines": machine_performance(agg.groups["machine"], names),
        "items": item_performance(agg.groups["item"]),
        "processes_by_productivity": process_performance(agg.groups["process"]),
        "daily_trend": daily_trend(agg.groups["date"]),
        "shift_performance": shift_performance(agg.groups["shift"]),
        "rejection_pareto": rejection_pareto(agg.rejection_counts, agg.overall.rejections),
        "rejection_by_item": rejections_by_item,
        "setters": setter["setters"],
        "setup_records": setter["setup_records"],
        "setter_summary": setter["setter_summary"],
        "financial_impact": estimate_financial_impact(
            agg.overall.rejections, agg.overall.downtime, agg.overall.rework, config),
        "shift_comparison": [dict(row) for row in downtime["downtime_by_shift"]],
        "repeat_downtime_offenders": repeat_downtime_offenders(
            downtime["downtime_by_machine"],
            min_occurrences=config.repeat_downtime_min_occurrences,
            limit=config.repeat_offender_limit),
        "repeat_rejection_offenders": repeat_rejection_offenders(
            rejections_by_item,
            min_total=config.repeat_rejection_min_total,
            limit=config.repeat_offender_limit),
        "setup_loss_analysis": setup_loss_analysis(
            agg.overall.setup_minutes, agg.overall.runtime, setter["setup_records"]),
        **filter_options,
        "log_count": len(filtered),
        "date_range": date_range,
        "warnings": messages,
    }
    return report
