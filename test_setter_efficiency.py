"""
Tests for setter_efficiency.py — setup records, setter scoring and setup loss.

Run: python -m pytest test_setter_efficiency.py -v
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from canonical_schema import SetupActivityEntry
from setter_efficiency import (
    analyze_setters,
    approval_delay_minutes,
    build_setup_records,
    reference_time,
    score_setters,
    setup_loss_analysis,
)

T0 = datetime(2026, 10, 12, 6, 0, tzinfo=timezone.utc)


def _setup(setter="p1", start_h=0.0, minutes=30.0, delay=None, item="I1", wo="WO1", **kw):
    start = T0 + timedelta(hours=start_h)
    end = start + timedelta(minutes=minutes)
    approval = end + timedelta(minutes=delay) if delay is not None else None
    fields = {
        "setter_id": setter, "machine_id": "M1", "work_order_id": wo, "item_code": item,
        "activity_date": start.date(), "setup_start_time": start, "setup_end_time": end,
        "setup_duration_minutes": minutes, "first_piece_approval_time": approval,
    }
    fields.update(kw)
    return SetupActivityEntry(**fields)


# =====================================================================
# Timing helpers
# =====================================================================

class TestTiming:

    def test_reference_time_prefers_start(self):
        assert reference_time(_setup(start_h=2)) == T0 + timedelta(hours=2)

    def test_reference_time_falls_back_to_end_then_date(self):
        end = T0 + timedelta(hours=1)
        s = SetupActivityEntry(setter_id="p1", setup_end_time=end)
        assert reference_time(s) == end
        s = SetupActivityEntry(setter_id="p1", activity_date=date(2026, 10, 12))
        assert reference_time(s) == datetime(2026, 10, 12, tzinfo=timezone.utc)
        assert reference_time(SetupActivityEntry(setter_id="p1")) is None

    def test_approval_delay(self):
        assert approval_delay_minutes(_setup(delay=15)) == 15
        assert approval_delay_minutes(_setup()) is None

    def test_negative_approval_delay_ignored(self):
        assert approval_delay_minutes(_setup(delay=-5)) is None


# =====================================================================
# Setup records
# =====================================================================

class TestSetupRecords:

    def test_records_in_chronological_order(self):
        records = build_setup_records([_setup(start_h=5, item="B"), _setup(start_h=1, item="A")])
        assert [r["item_code"] for r in records] == ["A", "B"]

    def test_repeat_flag_follows_time_not_input_order(self):
        later = _setup(start_h=10)
        earlier = _setup(start_h=0)
        records = build_setup_records([later, earlier])
        assert [r["is_repeat_setup"] for r in records] == [False, True]

    def test_names_and_serialized_fields(self):
        [rec] = build_setup_records([_setup(delay=12)], names={"p1": "Ravi", "M1": "VMC-01 - Haas"})
        assert rec["setter_name"] == "Ravi"
        assert rec["machine_name"] == "VMC-01 - Haas"
        assert rec["activity_date"] == "2026-10-12"
        assert rec["setup_start_time"] == T0.isoformat()
        assert rec["approval_delay_minutes"] == 12
        assert rec["is_repeat_setup"] is False

    def test_missing_names_are_unknown(self):
        [rec] = build_setup_records([_setup()])
        assert rec["setter_name"] == "Unknown"

    def test_window_override(self):
        setups = [_setup(start_h=0), _setup(start_h=10)]
        records = build_setup_records(setups, window_hours=8)
        assert [r["is_repeat_setup"] for r in records] == [False, False]


# =====================================================================
# Setter scoring
# =====================================================================

class TestScoreSetters:

    def test_score_formula(self):
        # avg setup 40, avg delay 10, 1 repeat of 2 setups -> 40 + 5 + 5
        records = build_setup_records([
            _setup(start_h=0, minutes=30, delay=5),
            _setup(start_h=3, minutes=50, delay=15),
        ])
        [row] = score_setters(records)
        assert row["avg_setup_duration_minutes"] == 40
        assert row["avg_approval_delay_minutes"] == 10
        assert row["repeat_setup_count"] == 1
        assert row["repeat_setup_items"] == ["I1"]
        assert row["efficiency_score"] == 50.0
        assert row["min_setup_duration_minutes"] == 30
        assert row["max_setup_duration_minutes"] == 50
        assert row["total_setup_duration_minutes"] == 80
        assert row["setups_with_approval_data"] == 2
        assert row["rank"] == "high"

    def test_lower_score_ranks_first(self):
        records = build_setup_records([
            _setup("slow", minutes=90, item="A"),
            _setup("fast", minutes=20, item="B"),
            _setup("mid", minutes=45, item="C"),
        ])
        rows = score_setters(records)
        assert [r["setter_id"] for r in rows] == ["fast", "mid", "slow"]
        assert [r["rank"] for r in rows] == ["high", "medium", "low"]

    def test_near_equal_scores_ordered_by_exact_score(self):
        # 30.04 and 30.01 both display as 30.0
        records = build_setup_records([
            _setup("a", minutes=30.04, item="A"),
            _setup("b", minutes=30.01, item="B"),
        ])
        rows = score_setters(records)
        assert [r["setter_id"] for r in rows] == ["b", "a"]
        assert [r["efficiency_score"] for r in rows] == [30.0, 30.0]

    def test_zero_durations_excluded_from_average(self):
        records = build_setup_records([
            _setup(minutes=0, item="A"),
            _setup(minutes=60, item="B"),
        ])
        [row] = score_setters(records)
        assert row["total_setups"] == 2
        assert row["avg_setup_duration_minutes"] == 60

    def test_no_approval_data(self):
        [row] = score_setters(build_setup_records([_setup()]))
        assert row["avg_approval_delay_minutes"] == 0
        assert row["max_approval_delay_minutes"] == 0
        assert row["efficiency_score"] == 30

    def test_unrounded_averages_feed_score(self):
        records = build_setup_records([
            _setup(minutes=10.04, item="A"),
            _setup(minutes=10.04, item="B"),
        ])
        [row] = score_setters(records)
        assert row["efficiency_score"] == pytest.approx(10.0)


class TestAnalyzeSetters:

    def test_summary(self):
        result = analyze_setters([
            _setup("p1", start_h=0, minutes=30, delay=10),
            _setup("p1", start_h=2, minutes=30),
            _setup("p2", start_h=1, minutes=60, item="Z"),
        ], names={"p1": "Ravi", "p2": "Anil"})
        summary = result["setter_summary"]
        assert summary["total_setups"] == 3
        assert summary["avg_setup_duration"] == 40
        assert summary["avg_approval_delay"] == 10
        assert summary["total_repeat_setups"] == 1
        assert summary["setter_count"] == 2
        # p1: 30 + 5 + 5 = 40; p2: 60
        assert summary["best_performer"] == "Ravi"
        assert summary["worst_performer"] == "Anil"
        assert len(result["setup_records"]) == 3

    def test_empty(self):
        result = analyze_setters([])
        assert result["setters"] == []
        assert result["setter_summary"]["best_performer"] is None
        assert result["setter_summary"]["total_setups"] == 0


# =====================================================================
# Setup loss
# =====================================================================

class TestSetupLoss:

    def test_share_of_setup_time(self):
        records = build_setup_records([_setup(minutes=30, item="A"), _setup(minutes=50, item="B")])
        loss = setup_loss_analysis(100, 900, records)
        assert loss["total_setup_time_minutes"] == 100
        assert loss["total_productive_time_minutes"] == 900
        assert loss["setup_time_percent"] == 10.0
        assert loss["changeover_count"] == 2
        assert loss["avg_setup_duration"] == 40
        assert loss["avg_changeover_time"] == 40

    def test_no_time_at_all(self):
        loss = setup_loss_analysis(0, 0, [])
        assert loss["setup_time_percent"] == 0
        assert loss["avg_setup_duration"] == 0
