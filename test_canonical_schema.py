"""
Tests for canonical_schema.py — record coercion at the data-source boundary.

Run: python -m pytest test_canonical_schema.py -v
"""

from datetime import date, datetime, timezone

from canonical_schema import (
    DowntimeEvent,
    normalize_downtime_events,
    normalize_production_logs,
    normalize_setup_activity,
)


# =====================================================================
# normalize_downtime_events — tolerant embedded event parsing
# =====================================================================

class TestNormalizeDowntimeEvents:

    def test_standard_shape(self):
        events = normalize_downtime_events([{"reason": "Tool Change", "duration_minutes": 15}])
        assert events == (DowntimeEvent("Tool Change", 15.0),)

    def test_type_fallback_for_reason(self):
        events = normalize_downtime_events([{"type": "No Power", "duration_minutes": 5}])
        assert events[0].reason == "No Power"

    def test_missing_reason_is_other(self):
        events = normalize_downtime_events([{"duration_minutes": 5}, {"reason": "  ", "minutes": 2}])
        assert [e.reason for e in events] == ["Other", "Other"]

    def test_legacy_minutes_field(self):
        events = normalize_downtime_events([{"reason": "Cleaning", "minutes": 12}])
        assert events[0].duration_minutes == 12

    def test_camel_case_duration(self):
        events = normalize_downtime_events([{"reason": "Cleaning", "durationMinutes": "7"}])
        assert events[0].duration_minutes == 7

    def test_missing_or_bad_duration_is_zero(self):
        events = normalize_downtime_events([
            {"reason": "A"},
            {"reason": "B", "duration_minutes": "n/a"},
            {"reason": "C", "duration_minutes": -4},
        ])
        assert [e.duration_minutes for e in events] == [0, 0, 0]

    def test_json_string_payload(self):
        events = normalize_downtime_events('[{"reason": "QC Hold", "duration_minutes": 30}]')
        assert events == (DowntimeEvent("QC Hold", 30.0),)

    def test_unusable_payloads(self):
        assert normalize_downtime_events(None) == ()
        assert normalize_downtime_events("not json") == ()
        assert normalize_downtime_events({"reason": "x"}) == ()
        assert normalize_downtime_events(["just text", 5]) == ()


# =====================================================================
# normalize_production_logs
# =====================================================================

class TestNormalizeProductionLogs:

    def test_missing_numeric_fields_default_to_zero(self):
        [entry] = normalize_production_logs([{"log_date": "2026-10-12", "machine_id": "M1"}])
        assert entry.actual_quantity == 0
        assert entry.ok_quantity == 0
        assert entry.actual_runtime_minutes == 0
        assert entry.efficiency_percentage == 0
        assert entry.rejections["Dent"] == 0
        assert entry.downtime_events == ()

    def test_ok_quantity_falls_back_to_actual(self):
        entries = normalize_production_logs([
            {"log_date": "2026-10-12", "machine_id": "M1", "actual_quantity": 50},
            {"log_date": "2026-10-12", "machine_id": "M1", "actual_quantity": 50, "ok_quantity": 45},
        ])
        assert [e.ok_quantity for e in entries] == [50, 45]

    def test_negative_and_text_numbers(self):
        [entry] = normalize_production_logs([{
            "log_date": "2026-10-12", "machine_id": "M1",
            "actual_runtime_minutes": "120", "total_downtime_minutes": -30,
            "target_quantity": "abc",
        }])
        assert entry.actual_runtime_minutes == 120
        assert entry.total_downtime_minutes == 0
        assert entry.target_quantity == 0

    def test_column_mapping(self):
        [entry] = normalize_production_logs([{
            "log_date": "2026-10-12T00:00:00", "machine_id": "M1", "shift": " Night ",
            "operator_id": "", "wo_id": "WO-1", "operation_code": "OP10",
            "party_code": "C01", "product_description": "Flange 40",
            "rejection_tool_mark": 4,
            "downtime_events": [{"reason": "Tool Change", "duration_minutes": 10}],
        }])
        assert entry.log_date == "2026-10-12"
        assert entry.shift == "Night"
        assert entry.operator_id is None
        assert entry.work_order_id == "WO-1"
        assert entry.process_code == "OP10"
        assert entry.customer_code == "C01"
        assert entry.item_description == "Flange 40"
        assert entry.rejections["Tool Mark"] == 4
        assert entry.downtime_events[0].reason == "Tool Change"

    def test_mixed_date_and_zoned_timestamps(self):
        entries = normalize_production_logs([
            {"log_date": "2026-10-12", "machine_id": "M1"},
            {"log_date": "2026-10-13T08:00:00Z", "machine_id": "M2"},
            {"log_date": "2026-10-14T02:00:00+05:30", "machine_id": "M3"},
        ])
        assert [e.log_date for e in entries] == ["2026-10-12", "2026-10-13", "2026-10-14"]

    def test_unparseable_date_is_blank(self):
        entries = normalize_production_logs([
            {"log_date": "yesterday", "machine_id": "M1"},
            {"log_date": None, "machine_id": "M2"},
        ])
        assert [e.log_date for e in entries] == ["", ""]

    def test_rows_without_machine_dropped(self):
        entries = normalize_production_logs([
            {"log_date": "2026-10-12", "machine_id": None},
            {"log_date": "2026-10-12", "machine_id": "M1"},
        ])
        assert [e.machine_id for e in entries] == ["M1"]

    def test_empty(self):
        assert normalize_production_logs([]) == []
        assert normalize_production_logs(None) == []


# =====================================================================
# normalize_setup_activity
# =====================================================================

class TestNormalizeSetupActivity:

    def test_timestamps_and_dates(self):
        [s] = normalize_setup_activity([{
            "id": "s1", "programmer_id": "p1", "machine_id": "M1",
            "activity_date": "2026-10-12",
            "setup_start_time": "2026-10-12T08:00:00+00:00",
            "setup_end_time": "2026-10-12T08:45:00+00:00",
            "setup_duration_minutes": 45,
            "first_piece_approval_time": "2026-10-12T09:00:00+00:00",
        }])
        assert s.setter_id == "p1"
        assert s.activity_date == date(2026, 10, 12)
        assert s.setup_start_time == datetime(2026, 10, 12, 8, 0, tzinfo=timezone.utc)
        assert s.setup_duration_minutes == 45
        assert s.setup_type == "standard"
        assert s.record_id == "s1"

    def test_duration_derived_from_times(self):
        [s] = normalize_setup_activity([{
            "programmer_id": "p1", "activity_date": "2026-10-12",
            "setup_start_time": "2026-10-12T08:00:00Z",
            "setup_end_time": "2026-10-12T09:30:00Z",
        }])
        assert s.setup_duration_minutes == 90

    def test_missing_setter_and_times(self):
        [s] = normalize_setup_activity([{"activity_date": "2026-10-12"}])
        assert s.setter_id == "unknown"
        assert s.setup_start_time is None
        assert s.first_piece_approval_time is None
        assert s.setup_duration_minutes == 0
