"""
Downtime loss analysis
======================
Flattens the downtime events embedded in each production log into Pareto
breakdowns by reason, machine, shift and reason category.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from shared import DOWNTIME_CATEGORIES, UNKNOWN_NAME, classify_downtime, pct, round1


@dataclass
class _Bucket:
    minutes: float = 0.0
    occurrences: int = 0
    reasons: dict = field(default_factory=dict)

    def add(self, reason, minutes):
        self.minutes += minutes
        self.occurrences += 1
        self.reasons[reason] = self.reasons.get(reason, 0.0) + minutes

    def top_reason(self):
        """Reason with the most minutes; the first one seen wins ties."""
        top, top_minutes = "N/A", 0.0
        for reason, minutes in self.reasons.items():
            if minutes > top_minutes:
                top, top_minutes = reason, minutes
        return top


def _by_minutes(rows, minutes_key, name_key):
    return sorted(rows, key=lambda r: (-r[minutes_key], str(r[name_key])))


def analyze_downtime(entries, total_downtime_minutes=0.0, total_paid_capacity_minutes=0.0,
                     machine_names=None, shift_key=None):
    """Build the downtime Pareto sections for a set of log entries.

    Events with no duration are ignored. Percentages of downtime are taken
    against the larger of the logged downtime total and the summed event
    minutes; when both are zero every percentage is 0.
    """
    machine_names = machine_names or {}
    shift_key = shift_key or (lambda e: e.shift or "unknown")

    by_reason: dict[str, _Bucket] = {}
    by_machine: dict[str, _Bucket] = {}
    by_shift: dict[str, _Bucket] = {}
    event_minutes = 0.0

    for entry in entries:
        for event in entry.downtime_events:
            minutes = event.duration_minutes
            if minutes <= 0:
                continue
            event_minutes += minutes
            by_reason.setdefault(event.reason, _Bucket()).add(event.reason, minutes)
            by_machine.setdefault(entry.machine_id, _Bucket()).add(event.reason, minutes)
            by_shift.setdefault(shift_key(entry), _Bucket()).add(event.reason, minutes)

    base = max(total_downtime_minutes, event_minutes)

    losses = []
    categories = {}
    for reason, b in by_reason.items():
        category = classify_downtime(reason)
        losses.append({
            "reason": reason,
            "category": category,
            "minutes": b.minutes,
            "hours": round1(b.minutes / 60),
            "percent_of_downtime": pct(b.minutes, base),
            "percent_of_capacity": pct(b.minutes, total_paid_capacity_minutes),
            "occurrences": b.occurrences,
        })
        cat = categories.setdefault(category, _Bucket())
        cat.minutes += b.minutes
        cat.occurrences += b.occurrences
    losses = _by_minutes(losses, "minutes", "reason")

    running = 0.0
    for row in losses:
        running += row["minutes"]
        row["cumulative_percent"] = pct(running, base)

    by_category = [
        {
            "category": category,
            "total_minutes": b.minutes,
            "hours": round1(b.minutes / 60),
            "percent_of_downtime": pct(b.minutes, base),
            "occurrences": b.occurrences,
        }
        for category, b in categories.items()
    ]
    # Same-minute categories follow the taxonomy order
    by_category.sort(key=lambda r: (-r["total_minutes"], DOWNTIME_CATEGORIES.index(r["category"])))

    by_machine_rows = _by_minutes([
        {
            "machine_id": machine_id,
            "machine_name": machine_names.get(machine_id, UNKNOWN_NAME),
            "total_minutes": b.minutes,
            "occurrences": b.occurrences,
            "top_reason": b.top_reason(),
        }
        for machine_id, b in by_machine.items()
    ], "total_minutes", "machine_id")

    by_shift_rows = _by_minutes([
        {
            "shift": shift,
            "total_minutes": b.minutes,
            "occurrences": b.occurrences,
            "percent_of_total": pct(b.minutes, base),
            "top_reason": b.top_reason(),
        }
        for shift, b in by_shift.items()
    ], "total_minutes", "shift")

    return {
        "downtime_losses": losses,
        "downtime_by_machine": by_machine_rows,
        "downtime_by_shift": by_shift_rows,
        "downtime_by_category": by_category,
    }
