"""Tertile ranking and repeat-offender detection."""

from __future__ import annotations

from shared import (
    REPEAT_DOWNTIME_MIN_OCCURRENCES,
    REPEAT_OFFENDER_LIMIT,
    REPEAT_REJECTION_MIN_TOTAL,
    REPEAT_SETUP_WINDOW_HOURS,
)

RANKS = ("high", "medium", "low")


def tertile_rank(index: int, total: int) -> str:
    """Rank of position *index* in a sorted list of *total* items.

    The first ceil(total/3) items are "high", the next ceil(total/3) are
    "medium", the remainder "low". A 10-item list splits 4/4/2.
    """
    if total <= 0 or index < 0 or index >= total:
        raise ValueError(f"index {index} out of range for {total} items")
    size = -(-total // 3)
    return RANKS[min(index // size, 2)]


def apply_tertile_ranks(rows: list[dict]) -> list[dict]:
    """Stamp a tertile `rank` on each row of an already-sorted list."""
    n = len(rows)
    return [dict(row, rank=tertile_rank(i, n)) for i, row in enumerate(rows)]


def repeat_downtime_offenders(downtime_by_machine,
                              min_occurrences=REPEAT_DOWNTIME_MIN_OCCURRENCES,
                              limit=REPEAT_OFFENDER_LIMIT):
    """Machines that went down repeatedly, worst (most minutes) first."""
    flagged = [m for m in downtime_by_machine if m["occurrences"] >= min_occurrences]
    flagged.sort(key=lambda m: (-m["total_minutes"], str(m["machine_id"])))
    return [
        {
            "id": m["machine_id"],
            "name": m["machine_name"],
            "type": "machine",
            "occurrences": m["occurrences"],
            "total_minutes": m["total_minutes"],
            "top_reason": m["top_reason"],
        }
        for m in flagged[:limit]
    ]


def repeat_rejection_offenders(rejection_by_item,
                               min_total=REPEAT_REJECTION_MIN_TOTAL,
                               limit=REPEAT_OFFENDER_LIMIT):
    """Items with heavy rejections; occurrences = number of distinct reasons."""
    flagged = [i for i in rejection_by_item if i["total"] >= min_total]
    flagged.sort(key=lambda i: (-i["total"], str(i["item_code"])))
    return [
        {
            "id": i["item_code"],
            "name": i["item_code"],
            "type": "item",
            "occurrences": len(i["reasons"]),
            "total_rejections": i["total"],
            "top_reason": i["reasons"][0]["reason"] if i["reasons"] else None,
        }
        for i in flagged[:limit]
    ]


class RepeatSetupDetector:
    """Flags setups of the same item/work order repeated inside a trailing window.

    Gaps are counted in whole hours (the fraction is dropped), so a setup
    24h30m after the last one is still inside a 24-hour window. Every
    observed setup is appended to its key's history whether or not it
    matched, so a chain of setups 10 hours apart keeps flagging.
    """

    def __init__(self, window_hours=REPEAT_SETUP_WINDOW_HOURS):
        self.window_hours = window_hours
        self._history: dict[tuple, list] = {}

    @staticmethod
    def key(item_code, work_order_id):
        return (item_code or "unknown", work_order_id or "unknown")

    def observe(self, item_code, work_order_id, timestamp) -> bool:
        history = self._history.setdefault(self.key(item_code, work_order_id), [])
        is_repeat = False
        for prior in history:
            hours = int((timestamp - prior).total_seconds() // 3600)
            if 0 <= hours <= self.window_hours:
                is_repeat = True
                break
        history.append(timestamp)
        return is_repeat
