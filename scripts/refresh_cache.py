#!/usr/bin/env python3
"""Refresh the observation caches of one or all projects and print KPIs.

Usage:
  python3 scripts/refresh_cache.py --project maggiore-lake
  python3 scripts/refresh_cache.py --all [--cache-only] [--today 2025-06-30]
"""

import argparse
import sys
from datetime import date

from sentinel_monitor.config.projects import PROJECTS
from sentinel_monitor.data_fetch.copernicus_client import AuthError
from sentinel_monitor.data_fetch.data_pipeline import DataPipeline


def format_kpi(kpi: dict) -> str:
    value = kpi["latest_index_value"]
    line = f"  {kpi['name']:<28} {value if value is None else round(value, 3)!s:>8}  " \
           f"{kpi['latest_date'] or '-':<10}  {kpi['status']}"
    if kpi.get("latest_ndmi_value") is not None:
        line += f"  ndmi={kpi['latest_ndmi_value']:.3f}"
    if kpi.get("spatial_coverage") is not None:
        line += f"  coverage={kpi['spatial_coverage']:.0f}%"
    return line


def main(argv=None, pipeline: DataPipeline = None) -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--project", choices=sorted(PROJECTS))
    target.add_argument("--all", action="store_true")
    ap.add_argument("--cache-only", action="store_true", help="no gateway calls, cached data only")
    ap.add_argument("--today", type=date.fromisoformat, default=None)
    args = ap.parse_args(argv)

    pipeline = pipeline or DataPipeline()
    project_ids = sorted(pipeline.projects) if args.all else [args.project]

    failed = 0
    for project_id in project_ids:
        try:
            if args.cache_only:
                result = pipeline.fetch_project(project_id, args.today, offline=True)
            else:
                result = pipeline.fetch_project(project_id, args.today)
        except AuthError as e:
            print(f"{project_id}: authentication failed: {e}", file=sys.stderr)
            failed += 1
            continue

        print(f"{result['project']['name']} [{result['window']['start']} .. {result['window']['end']}]")
        for kpi in result["kpis"]:
            print(format_kpi(kpi))
        if result["aggregate_kpi"] is not None:
            print(format_kpi(result["aggregate_kpi"]))
        for source, message in result["data_quality"]["errors"].items():
            print(f"  ! {source}: {message}", file=sys.stderr)

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
