"""
Production Performance Metrics
==============================
Capacity, grouping and efficiency math over normalized production logs.

One pass over the logs (aggregate_logs) folds every entry into immutable
GroupTotals records: one for the whole window plus one per date, shift,
machine, operator, item and process. Everything else in this module turns
those totals into report rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from rankings import apply_tertile_ranks
from shared import (
    DEFAULT_SHIFT_MINUTES,
    MINUTES_PER_DAY,
    UNKNOWN_NAME,
    MetricsConfig,
    pct,
    round1,
)


# ---------------------------------------------------------------------------
# Capacity Calculator
# ---------------------------------------------------------------------------
def _minutes_since_midnight(hhmm):
    parts = str(hhmm).strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Not an HH:MM time: {hhmm!r}")
    return int(parts[0]) * 60 + int(parts[1])


def paid_capacity_minutes(entry, default_shift_minutes=DEFAULT_SHIFT_MINUTES):
    """Scheduled minutes for one log entry.

    Uses shift start/end when both are logged (overnight shifts wrap past
    midnight), otherwise the default shift length.
    """
    if not entry.shift_start_time or not entry.shift_end_time:
        return float(default_shift_minutes)
    try:
        duration = (_minutes_since_midnight(entry.shift_end_time)
                    - _minutes_since_midnight(entry.shift_start_time))
    except ValueError:
        return float(default_shift_minutes)
    if duration < 0:
        duration += MINUTES_PER_DAY
    return float(duration)


# ---------------------------------------------------------------------------
# Grouping Aggregator
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class GroupTotals:
    log_count: int = 0
    actual: int = 0
    output: int = 0
    target: int = 0
    rejections: int = 0
    rework: int = 0
    runtime: float = 0.0
    downtime: float = 0.0
    paid_capacity: float = 0.0
    setup_minutes: float = 0.0
    efficiency_mean: float = 0.0
    efficiency_samples: int = 0
    standard_cycle_time: float = 0.0


EMPTY_TOTALS = GroupTotals()


def running_mean(mean, n, value):
    """Mean after adding *value* as the n-th sample."""
    return (mean * (n - 1) + value) / n


def accumulate(totals: GroupTotals, entry, paid_capacity: float) -> GroupTotals:
    """Return *totals* with one more log entry folded in.

    Efficiency only moves the running mean when the entry reports a value
    above zero; the entry still counts toward log_count.
    """
    mean = totals.efficiency_mean
    samples = totals.efficiency_samples
    if entry.efficiency_percentage > 0:
        samples += 1
        mean = running_mean(mean, samples, entry.efficiency_percentage)

    return replace(
        totals,
        log_count=totals.log_count + 1,
        actual=totals.actual + entry.actual_quantity,
        output=totals.output + entry.ok_quantity,
        target=totals.target + entry.target_quantity,
        rejections=totals.rejections + entry.total_rejection_quantity,
        rework=totals.rework + entry.rework_quantity,
        runtime=totals.runtime + entry.actual_runtime_minutes,
        downtime=totals.downtime + entry.total_downtime_minutes,
        paid_capacity=totals.paid_capacity + paid_capacity,
        setup_minutes=totals.setup_minutes + entry.setup_duration_minutes,
        efficiency_mean=mean,
        efficiency_samples=samples,
        standard_cycle_time=entry.cycle_time_seconds or totals.standard_cycle_time,
    )


def shift_key(entry):
    return entry.shift or "unknown"


GROUP_KEYS = {
    "date": lambda e: e.log_date,
    "shift": shift_key,
    "machine": lambda e: e.machine_id,
    "operator": lambda e: e.operator_id,
    "item": lambda e: e.item_description or "Unknown",
    "process": lambda e: e.process_code or "Unknown",
}


@dataclass
class LogAggregation:
    """Everything the single pass over the logs produces."""

    overall: GroupTotals = EMPTY_TOTALS
    groups: dict = field(default_factory=lambda: {name: {} for name in GROUP_KEYS})
    day_shifts: int = 0
    night_shifts: int = 0
    machines_seen: set = field(default_factory=set)
    machines_running: set = field(default_factory=set)
    rejection_counts: dict = field(default_factory=dict)
    rejections_by_item: dict = field(default_factory=dict)


def aggregate_logs(entries, config: MetricsConfig | None = None) -> LogAggregation:
    """Single pass: window totals, every grouping, shift counts and rejection tallies."""
    config = config or MetricsConfig()
    agg = LogAggregation()

    for entry in entries:
        paid = paid_capacity_minutes(entry, config.default_shift_minutes)
        agg.overall = accumulate(agg.overall, entry, paid)
        for name, key_func in GROUP_KEYS.items():
            key = key_func(entry)
            if key is None:
                continue
            bucket = agg.groups[name]
            bucket[key] = accumulate(bucket.get(key, EMPTY_TOTALS), entry, paid)

        shift = (entry.shift or "").lower()
        if shift == "day":
            agg.day_shifts += 1
        elif shift == "night":
            agg.night_shifts += 1

        agg.machines_seen.add(entry.machine_id)
        if entry.actual_runtime_minutes > 0:
            agg.machines_running.add(entry.machine_id)

        item = GROUP_KEYS["item"](entry)
        for label, count in entry.rejections.items():
            if count <= 0:
                continue
            agg.rejection_counts[label] = agg.rejection_counts.get(label, 0) + count
            by_reason = agg.rejections_by_item.setdefault(item, {})
            by_reason[label] = by_reason.get(label, 0) + count

    return agg


# ---------------------------------------------------------------------------
# Window summaries
# ---------------------------------------------------------------------------
def summarize_capacity(agg: LogAggregation) -> dict:
    paid = agg.overall.paid_capacity
    runtime = agg.overall.runtime
    downtime = agg.overall.downtime
    active_paid = paid - downtime
    utilization = min(pct(runtime, paid), 100.0)
    return {
        "total_manned_shifts": agg.day_shifts + agg.night_shifts,
        "day_shifts": agg.day_shifts,
        "night_shifts": agg.night_shifts,
        "total_paid_capacity_minutes": paid,
        "total_productive_runtime_minutes": runtime,
        "total_downtime_minutes": downtime,
        "active_paid_capacity_minutes": active_paid,
        "active_machines": len(agg.machines_running),
        "inactive_machines": len(agg.machines_seen - agg.machines_running),
        "utilization_percent": utilization,
        "idle_time_minutes": max(active_paid - runtime, 0.0),
    }


def rejection_rate(output, rejections):
    """Rejected share of everything produced, 0-100."""
    return pct(rejections, output + rejections)


def summarize_efficiency(agg: LogAggregation) -> dict:
    t = agg.overall
    return {
        "global_actual_output": t.actual,
        "global_target_output": t.target,
        "global_efficiency_percent": round1(t.efficiency_mean),
        "total_production": t.output,
        "total_rejections": t.rejections,
        "total_rework": t.rework,
        "global_rejection_percent": rejection_rate(t.output, t.rejections),
    }


def _yield_percent(t: GroupTotals, default=0.0):
    if t.output + t.rejections == 0:
        return default
    return pct(t.output, t.output + t.rejections)


# ---------------------------------------------------------------------------
# Per-entity tables
# ---------------------------------------------------------------------------
def operator_performance(groups, names=None):
    """Operators ranked by ok output against target."""
    names = names or {}
    rows = [
        {
            "operator_id": op_id,
            "operator_name": names.get(op_id, UNKNOWN_NAME),
            "total_runtime": t.runtime,
            "total_actual": t.actual,
            "total_target": t.target,
            "total_ok": t.output,
            "total_rejections": t.rejections,
            "efficiency_percent": pct(t.output, t.target),
            "scrap_percent": pct(t.rejections, t.actual),
            "avg_efficiency": round1(t.efficiency_mean),
            "log_count": t.log_count,
        }
        for op_id, t in groups.items()
    ]
    rows.sort(key=lambda r: (-r["efficiency_percent"], str(r["operator_id"])))
    return apply_tertile_ranks(rows)


def machine_performance(groups, names=None):
    """Machines ranked by runtime against paid capacity."""
    names = names or {}
    rows = [
        {
            "machine_id": machine_id,
            "machine_name": names.get(machine_id, UNKNOWN_NAME),
            "total_runtime": t.runtime,
            "total_downtime": t.downtime,
            "expected_runtime": t.paid_capacity,
            "total_output": t.output,
            "total_rejections": t.rejections,
            "utilization_percent": pct(t.runtime, t.paid_capacity),
            "yield_percent": _yield_percent(t),
            "avg_efficiency": round1(t.efficiency_mean),
            "log_count": t.log_count,
        }
        for machine_id, t in groups.items()
    ]
    rows.sort(key=lambda r: (-r["utilization_percent"], str(r["machine_id"])))
    return apply_tertile_ranks(rows)


def item_performance(groups):
    """Items ordered worst yield first; the top tertile is where attention goes."""
    rows = []
    for item_code, t in groups.items():
        actual_cycle = 0.0
        if t.runtime > 0 and t.output > 0:
            actual_cycle = round1(t.runtime * 60 / t.output)
        rows.append({
            "item_code": item_code,
            "total_output": t.output,
            "total_rejections": t.rejections,
            "avg_efficiency": _yield_percent(t, default=100.0),
            "standard_cycle_time": t.standard_cycle_time,
            "actual_cycle_time": actual_cycle,
            "log_count": t.log_count,
        })
    rows.sort(key=lambda r: (r["avg_efficiency"], str(r["item_code"])))
    return apply_tertile_ranks(rows)


def process_performance(groups):
    rows = [
        {
            "process": process,
            "total_output": t.output,
            "total_rejections": t.rejections,
            "avg_efficiency": _yield_percent(t, default=100.0),
            "avg_runtime": round1(t.runtime / t.log_count) if t.log_count else 0.0,
            "log_count": t.log_count,
        }
        for process, t in groups.items()
    ]
    rows.sort(key=lambda r: (-r["total_output"], str(r["process"])))
    return rows


def _period_row(label_key, label, t: GroupTotals):
    return {
        label_key: label,
        "total_output": t.output,
        "total_target": t.target,
        "total_rejections": t.rejections,
        "total_runtime": t.runtime,
        "total_downtime": t.downtime,
        "log_count": t.log_count,
        "avg_efficiency": round1(t.efficiency_mean),
        "rejection_percent": rejection_rate(t.output, t.rejections),
    }


def daily_trend(groups):
    return [_period_row("date", d, groups[d]) for d in sorted(groups)]


def shift_performance(groups):
    rows = [_period_row("shift", s, t) for s, t in groups.items()]
    rows.sort(key=lambda r: (-r["total_output"], r["shift"]))
    return rows


# ---------------------------------------------------------------------------
# Rejection analysis
# ---------------------------------------------------------------------------
def rejection_pareto(rejection_counts, total_rejections=0):
    """Rejection reasons, largest first, with share and cumulative share.

    Shares are taken against the larger of the logged rejection total and
    the sum of the reason counters, so they never add up past 100.
    """
    base = max(total_rejections, sum(rejection_counts.values()))
    ordered = sorted(rejection_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    rows = []
    running = 0
    for reason, count in ordered:
        running += count
        rows.append({
            "reason": reason,
            "count": count,
            "percent": pct(count, base),
            "cumulative_percent": pct(running, base),
        })
    return rows


def rejection_by_item(rejections_by_item):
    rows = []
    for item_code, by_reason in rejections_by_item.items():
        reasons = [
            {"reason": r, "count": c}
            for r, c in sorted(by_reason.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
        rows.append({
            "item_code": item_code,
            "total": sum(by_reason.values()),
            "reasons": reasons,
        })
    rows.sort(key=lambda r: (-r["total"], str(r["item_code"])))
    return rows


# ---------------------------------------------------------------------------
# Financial Impact Estimator
# ---------------------------------------------------------------------------
def estimate_financial_impact(total_rejections, total_downtime_minutes, total_rework,
                              config: MetricsConfig | None = None) -> dict:
    config = config or MetricsConfig()
    rejection_cost = total_rejections * config.rejection_cost_per_piece
    downtime_cost = total_downtime_minutes / 60 * config.hourly_downtime_cost
    rework_cost = total_rework * config.rework_cost_per_piece
    return {
        "rejection_cost_estimate": int(round(rejection_cost)),
        "downtime_cost_estimate": int(round(downtime_cost)),
        "rework_cost_estimate": int(round(rework_cost)),
        "total_loss_cost": int(round(rejection_cost + downtime_cost + rework_cost)),
        "currency": config.currency,
    }
