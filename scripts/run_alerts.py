#!/usr/bin/env python3
"""
Run One Training Expiry Alert Pass
==================================
Runs the same job the in-process scheduler runs, once, and prints the
summary. Useful from cron when the API runs with the scheduler disabled,
or to backfill a day the service was down.

Usage:
    python scripts/run_alerts.py [--date 2024-01-06] [--dry-run]
"""

import argparse
import json
from datetime import date

from trainwatch.config import get_settings
from trainwatch.database import Base, SessionLocal, engine
from trainwatch.worker.scheduler import ExpiryAlertJob


def run_alerts(run_date: date, dry_run: bool = False) -> dict:
    """Execute one alert run and return its summary."""
    Base.metadata.create_all(bind=engine)

    job = ExpiryAlertJob(SessionLocal, get_settings(), today=lambda: run_date, dry_run=dry_run)

    summary = job.run_once()
    return summary.to_dict() if summary else {"error": "alert run failed, see logs"}


def main():
    parser = argparse.ArgumentParser(description="Run one training expiry alert pass")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=date.today(),
        help="Day to run the scan for (default: today)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log emails instead of sending them; nothing is written to the database"
    )
    args = parser.parse_args()

    print(json.dumps(run_alerts(args.date, args.dry_run), indent=2))


if __name__ == "__main__":
    main()
