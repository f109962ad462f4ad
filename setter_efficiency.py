"""
Setter efficiency scoring
=========================
Scores the people who set up machines from setup/changeover activity:
average setup time, first-piece approval delay and repeat setups of the
same item/work order inside the repeat window.

    efficiency_score = avg_setup + 0.5 * avg_approval_delay + repeat_penalty

Lower is better.
"""

from __future__ import annotations

from datetime import datetime, time, timezone

import numpy as np

from rankings import RepeatSetupDetector, apply_tertile_ranks
from shared import REPEAT_SETUP_WINDOW_HOURS, UNKNOWN_NAME, pct, round1

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

APPROVAL_DELAY_WEIGHT = 0.5
REPEAT_PENALTY_WEIGHT = 10


def reference_time(setup):
    """When a setup happened: start, else end, else midnight UTC of the activity date."""
    if setup.setup_start_time is not None:
        return setup.setup_start_time
    if setup.setup_end_time is not None:
        return setup.setup_end_time
    if setup.activity_date is not None:
        return datetime.combine(setup.activity_date, time.min, tzinfo=timezone.utc)
    return None


def approval_delay_minutes(setup):
    """Minutes from setup end to first-piece approval, None if unknown or negative."""
    if setup.setup_end_time is None or setup.first_piece_approval_time is None:
        return None
    delay = (setup.first_piece_approval_time - setup.setup_end_time).total_seconds() / 60
    return delay if delay >= 0 else None


def _iso(value):
    return value.isoformat() if value is not None else None


def _mean(values):
    return float(np.mean(values)) if values else 0.0


def build_setup_records(setups, names=None, window_hours=REPEAT_SETUP_WINDOW_HOURS):
    """One record per setup in chronological order, flagged for repeats."""
    names = names or {}
    detector = RepeatSetupDetector(window_hours)

    def _order(setup):
        ts = reference_time(setup)
        return (ts is None, ts or _EPOCH)

    records = []
    for setup in sorted(setups, key=_order):
        ts = reference_time(setup)
        is_repeat = False
        if ts is not None:
            is_repeat = detector.observe(setup.item_code, setup.work_order_id, ts)
        records.append({
            "record_id": setup.record_id,
            "setter_id": setup.setter_id,
            "setter_name": names.get(setup.setter_id, UNKNOWN_NAME),
            "activity_date": _iso(setup.activity_date),
            "machine_id": setup.machine_id,
            "machine_name": names.get(setup.machine_id, UNKNOWN_NAME),
            "work_order_id": setup.work_order_id,
            "item_code": setup.item_code,
            "setup_type": setup.setup_type,
            "setup_start_time": _iso(setup.setup_start_time),
            "setup_end_time": _iso(setup.setup_end_time),
            "setup_duration_minutes": setup.setup_duration_minutes,
            "first_piece_approval_time": _iso(setup.first_piece_approval_time),
            "approval_delay_minutes": approval_delay_minutes(setup),
            "is_repeat_setup": is_repeat,
        })
    return records


def score_setters(records):
    """Per-setter metrics ranked best (lowest score) first."""
    grouped: dict[str, list] = {}
    for rec in records:
        grouped.setdefault(rec["setter_id"], []).append(rec)

    scored = []
    for setter_id, recs in grouped.items():
        setups = len(recs)
        durations = [r["setup_duration_minutes"] for r in recs if r["setup_duration_minutes"] > 0]
        delays = [r["approval_delay_minutes"] for r in recs if r["approval_delay_minutes"] is not None]
        repeats = [r for r in recs if r["is_repeat_setup"]]

        avg_setup = _mean(durations)
        avg_delay = _mean(delays)
        repeat_penalty = len(repeats) / setups * REPEAT_PENALTY_WEIGHT if setups else 0.0
        score = avg_setup + APPROVAL_DELAY_WEIGHT * avg_delay + repeat_penalty

        repeat_items = []
        for r in repeats:
            if r["item_code"] and r["item_code"] not in repeat_items:
                repeat_items.append(r["item_code"])

        scored.append((score, {
            "setter_id": setter_id,
            "setter_name": recs[0]["setter_name"],
            "total_setups": setups,
            "avg_setup_duration_minutes": round1(avg_setup),
            "total_setup_duration_minutes": round1(sum(durations)),
            "min_setup_duration_minutes": round1(min(durations)) if durations else 0.0,
            "max_setup_duration_minutes": round1(max(durations)) if durations else 0.0,
            "avg_approval_delay_minutes": round1(avg_delay),
            "max_approval_delay_minutes": round1(max(delays)) if delays else 0.0,
            "setups_with_approval_data": len(delays),
            "repeat_setup_count": len(repeats),
            "repeat_setup_items": repeat_items,
            "efficiency_score": round1(score),
        }))

    # Ordered on the unrounded score; only the displayed value is rounded
    scored.sort(key=lambda pair: (pair[0], str(pair[1]["setter_id"])))
    return apply_tertile_ranks([row for _, row in scored])


def summarize_setters(records, setters):
    durations = [r["setup_duration_minutes"] for r in records if r["setup_duration_minutes"] > 0]
    delays = [r["approval_delay_minutes"] for r in records if r["approval_delay_minutes"] is not None]
    return {
        "total_setups": len(records),
        "avg_setup_duration": round1(_mean(durations)),
        "avg_approval_delay": round1(_mean(delays)),
        "total_repeat_setups": sum(1 for r in records if r["is_repeat_setup"]),
        "setter_count": len(setters),
        "best_performer": setters[0]["setter_name"] if setters else None,
        "worst_performer": setters[-1]["setter_name"] if setters else None,
    }


def setup_loss_analysis(total_setup_minutes, total_runtime_minutes, records):
    """Setup time logged on production versus productive runtime, plus changeover stats."""
    durations = [r["setup_duration_minutes"] for r in records if r["setup_duration_minutes"] > 0]
    avg_setup = round1(_mean(durations))
    return {
        "total_setup_time_minutes": total_setup_minutes,
        "total_productive_time_minutes": total_runtime_minutes,
        "setup_time_percent": pct(total_setup_minutes, total_runtime_minutes + total_setup_minutes),
        "avg_setup_duration": avg_setup,
        "changeover_count": len(records),
        "avg_changeover_time": avg_setup,
    }


def analyze_setters(setups, names=None, window_hours=REPEAT_SETUP_WINDOW_HOURS):
    """Setup records, ranked setters and the setter summary in one call."""
    records = build_setup_records(setups, names, window_hours)
    setters = score_setters(records)
    return {
        "setup_records": records,
        "setters": setters,
        "setter_summary": summarize_setters(records, setters),
    }
