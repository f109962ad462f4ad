"""
Shared constants and utilities for the Production Performance Metrics Engine
============================================================================
Single source of truth for shift capacity defaults, cost constants, the
downtime reason taxonomy, and the rejection reason table used across
performance_metrics.py, downtime_analysis.py, setter_efficiency.py and
production_report.py.
"""

import os
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Capacity and cost defaults
# ---------------------------------------------------------------------------
DEFAULT_SHIFT_MINUTES = 690  # 11.5 hour shift when start/end are not logged
MINUTES_PER_DAY = 24 * 60

HOURLY_DOWNTIME_COST = 500  # per hour of downtime
REJECTION_COST_PER_PIECE = 50  # per rejected piece
REWORK_COST_FACTOR = 0.5  # rework costs half a rejection
CURRENCY = "INR"

# ---------------------------------------------------------------------------
# Repeat detection thresholds
# ---------------------------------------------------------------------------
REPEAT_SETUP_WINDOW_HOURS = 24
REPEAT_DOWNTIME_MIN_OCCURRENCES = 3
REPEAT_REJECTION_MIN_TOTAL = 10
REPEAT_OFFENDER_LIMIT = 5

TRAILING_WINDOW_DAYS = 7  # custom period with no dates = last 7 days


@dataclass(frozen=True)
class MetricsConfig:
    """Tunable engine parameters. Defaults mirror the module constants."""

    default_shift_minutes: float = DEFAULT_SHIFT_MINUTES
    hourly_downtime_cost: float = HOURLY_DOWNTIME_COST
    rejection_cost_per_piece: float = REJECTION_COST_PER_PIECE
    currency: str = CURRENCY
    repeat_setup_window_hours: float = REPEAT_SETUP_WINDOW_HOURS
    repeat_downtime_min_occurrences: int = REPEAT_DOWNTIME_MIN_OCCURRENCES
    repeat_rejection_min_total: int = REPEAT_REJECTION_MIN_TOTAL
    repeat_offender_limit: int = REPEAT_OFFENDER_LIMIT
    trailing_window_days: int = TRAILING_WINDOW_DAYS

    @property
    def rework_cost_per_piece(self):
        return self.rejection_cost_per_piece * REWORK_COST_FACTOR

    @classmethod
    def from_env(cls, environ=None):
        """Build a config, overriding defaults from PERF_* environment variables."""
        env = os.environ if environ is None else environ
        overrides = {}
        for var, field_name, cast in _ENV_OVERRIDES:
            raw = env.get(var, "")
            if not str(raw).strip():
                continue
            try:
                overrides[field_name] = cast(raw)
            except ValueError:
                raise ValueError(f"{var} must be a number, got {raw!r}") from None
        return cls(**overrides)


_ENV_OVERRIDES = [
    ("PERF_DEFAULT_SHIFT_MINUTES", "default_shift_minutes", float),
    ("PERF_HOURLY_DOWNTIME_COST", "hourly_downtime_cost", float),
    ("PERF_REJECTION_COST_PER_PIECE", "rejection_cost_per_piece", float),
    ("PERF_CURRENCY", "currency", str.strip),
    ("PERF_REPEAT_WINDOW_HOURS", "repeat_setup_window_hours", float),
]


# ---------------------------------------------------------------------------
# Downtime reason taxonomy
# ---------------------------------------------------------------------------
DOWNTIME_CATEGORIES = [
    "Material", "Machine", "Power", "QC", "Operator", "Tooling", "Other",
]

OTHER_CATEGORY = "Other"

DOWNTIME_REASONS = {
    # Material
    "Material Not Available": "Material",
    "Material Shortage": "Material",
    "Wrong Material": "Material",
    "Material Quality Issue": "Material",
    # Machine
    "Machine Repair": "Machine",
    "Machine Breakdown": "Machine",
    "Machine Maintenance": "Machine",
    "Machine Calibration": "Machine",
    "Machine Warmup": "Machine",
    # Power / utilities
    "No Power": "Power",
    "Power Fluctuation": "Power",
    "Compressor Issue": "Power",
    # QC
    "Quality Problem": "QC",
    "QC Hold": "QC",
    "First Piece Approval": "QC",
    "Inspection Delay": "QC",
    "Rework": "QC",
    # Operator
    "No Operator": "Operator",
    "Operator Training": "Operator",
    "Operator Shifted to Other Work": "Operator",
    "Tea Break": "Operator",
    "Lunch Break": "Operator",
    "Operator Fatigue": "Operator",
    # Tooling
    "Tool Change": "Tooling",
    "Tool Not Available": "Tooling",
    "Tool Damage": "Tooling",
    "Tool Setup": "Tooling",
    "Insert Change": "Tooling",
    # General
    "Job Setting": "Other",
    "Setting Change": "Other",
    "Cleaning": "Other",
    "Program Upload": "Other",
    "Shift Handover": "Other",
    "Other": "Other",
}

_REASON_LOOKUP = {k.lower(): v for k, v in DOWNTIME_REASONS.items()}


def classify_downtime(reason):
    """Map a free-text downtime reason to its category. Unknown reasons are Other."""
    if not reason:
        return OTHER_CATEGORY
    return _REASON_LOOKUP.get(str(reason).strip().lower(), OTHER_CATEGORY)


# ---------------------------------------------------------------------------
# Rejection reasons (one counter column per reason on each production log)
# ---------------------------------------------------------------------------
REJECTION_FIELDS = {
    "rejection_dent": "Dent",
    "rejection_dimension": "Dimension",
    "rejection_face_not_ok": "Face Not OK",
    "rejection_forging_mark": "Forging Mark",
    "rejection_lining": "Lining",
    "rejection_material_not_ok": "Material Not OK",
    "rejection_previous_setup_fault": "Previous Setup Fault",
    "rejection_scratch": "Scratch",
    "rejection_setting": "Setting",
    "rejection_tool_mark": "Tool Mark",
}

UNKNOWN_NAME = "Unknown"


# ---------------------------------------------------------------------------
# Small numeric helpers
# ---------------------------------------------------------------------------
def pct(part, whole):
    """part / whole as a 0-100 percentage rounded to 0.1, 0 when whole is 0."""
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def round1(value):
    return round(float(value), 1)
