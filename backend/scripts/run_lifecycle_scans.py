#!/usr/bin/env python3
"""
Lifecycle Scans Script

Runs the daily lifecycle scans once, for cron or one-off operations.

Usage:
    cd backend
    python -m scripts.run_lifecycle_scans --job expiration
    python -m scripts.run_lifecycle_scans --job reminders
    python -m scripts.run_lifecycle_scans --job all
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from subscription_service.config.settings import settings
from subscription_service.infrastructure.db.database import close_db
from subscription_service.infrastructure.services.lifecycle_scheduler import LifecycleScheduler

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def run(job: str) -> int:
    """Run the requested scans. Returns the number of failed items."""
    scheduler = LifecycleScheduler()
    reports = []
    try:
        if job in ("expiration", "all"):
            reports.append(await scheduler.run_expiration_scan())
        if job in ("reminders", "all"):
            reports.append(await scheduler.run_reminder_scan())
    finally:
        await close_db()

    for report in reports:
        logger.info(f"{report.job}: {report.to_dict()}")
    return sum(report.failed for report in reports)


def main():
    parser = argparse.ArgumentParser(description="Run subscription lifecycle scans")
    parser.add_argument(
        "--job",
        choices=["expiration", "reminders", "all"],
        default="all",
        help="Which scan to run (default: all)",
    )
    args = parser.parse_args()

    failed = asyncio.run(run(args.job))
    if failed:
        logger.warning(f"{failed} subscriptions failed; see errors above")
        sys.exit(1)


if __name__ == "__main__":
    main()
