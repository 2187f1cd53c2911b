#!/usr/bin/env python3
"""Run one scheduled job immediately.

Usage:
  python scripts/run_job.py create_daily_tasks
  python scripts/run_job.py send_review_reminder --now 2026-10-19T07:00:00+09:00
"""

import argparse
import json
import sys

from lingosavor.config import load_config
from lingosavor.extensions import build_service_context
from lingosavor.jobs import JOBS, run_job
from lingosavor.logging_config import configure_logging
from lingosavor.services.retention import coerce_datetime


def parse_now(value):
    if not value:
        return None
    parsed = coerce_datetime(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"Invalid ISO timestamp: {value}")
    return parsed


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run a LingoSavor scheduled job once.")
    parser.add_argument("job", choices=sorted(JOBS), help="Job name.")
    parser.add_argument("--now", type=parse_now, default=None, help="Override the run time (ISO 8601).")
    args = parser.parse_args(argv)

    config = load_config()
    configure_logging(config.log_level)
    app_ctx = build_service_context(config)
    summary = run_job(args.job, app_ctx, now=args.now)
    if summary is None:
        print(f"[SKIPPED] {args.job}: another run holds the lease")
        return 1
    print(f"[DONE] {args.job}")
    print(json.dumps(summary, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
