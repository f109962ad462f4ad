"""CLI for the production performance report."""

from __future__ import annotations

import argparse
import json
import sys
import warnings

from db import DataSourceError, InMemorySource, SupabaseSource, is_connected
from production_report import PERIODS, PartialDataWarning, ReportOptions, build_production_report
from shared import MetricsConfig


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Production performance report")
    p.add_argument("--snapshot", help="JSON snapshot file instead of the Supabase store")
    p.add_argument("--period", default="week", choices=PERIODS, help="Reporting period")
    p.add_argument("--start", help="Start date (YYYY-MM-DD), used with --period custom")
    p.add_argument("--end", help="End date (YYYY-MM-DD), used with --period custom")
    p.add_argument("--today", help="Pin today's date (YYYY-MM-DD) for period resolution")
    p.add_argument("--machine", help="Machine id filter")
    p.add_argument("--operator", help="Operator id filter")
    p.add_argument("--process", help="Process (operation code) filter")
    p.add_argument("--item", help="Item description substring filter")
    p.add_argument("--shift", help="Shift filter")
    p.add_argument("--section", help="Print only this top-level report section")
    return p


def main(argv=None) -> None:
    args = _build_parser().parse_args(argv)

    if not args.snapshot and not is_connected():
        raise SystemExit(
            "Error: Supabase is not configured. Set SUPABASE_URL and SUPABASE_KEY, "
            "or pass --snapshot FILE."
        )

    try:
        config = MetricsConfig.from_env()
        source = InMemorySource.from_json(args.snapshot) if args.snapshot else SupabaseSource()
        options = ReportOptions(
            period=args.period,
            start_date=args.start,
            end_date=args.end,
            machine_id=args.machine,
            operator_id=args.operator,
            process_code=args.process,
            item_filter=args.item,
            shift=args.shift,
        )
        with warnings.catch_warnings():
            # Degradations are listed in report["warnings"] and printed below
            warnings.simplefilter("ignore", PartialDataWarning)
            report = build_production_report(source, options, config, today=args.today)
    except (DataSourceError, ValueError) as exc:
        raise SystemExit(f"Error: {exc}")

    for message in report["warnings"]:
        print(f"WARNING: {message}", file=sys.stderr)

    if args.section:
        if args.section not in report:
            raise SystemExit(f"Unknown section {args.section!r}; choose from: {', '.join(report)}")
        result = report[args.section]
    else:
        result = report
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
