#!/usr/bin/env python3
"""Run one of the portal's scheduled jobs from a shell or system cron.

Usage:
    python scripts/run_jobs.py close-surveys
    python scripts/run_jobs.py yearly-assessments --year 2027
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from summit_portal.config import settings  # noqa: E402
from summit_portal.core.logging import configure_logging  # noqa: E402
from summit_portal.services.jobs import JOBS  # noqa: E402
from summit_portal.worker import run_job  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a scheduled portal job once.")
    parser.add_argument("job", choices=sorted(JOBS))
    parser.add_argument("--year", type=int, help="Assessment year for yearly-assessments")
    args = parser.parse_args()

    configure_logging(settings.log_level, json_logs=settings.log_json)
    kwargs = {"year": args.year} if args.job == "yearly-assessments" and args.year else {}
    stats = run_job(args.job, **kwargs)
    print(f"{args.job}: processed={stats['processed']} emails_sent={stats['emails_sent']} errors={stats['errors']}")
    for detail in stats["details"]:
        print(f"  - {detail}")


if __name__ == "__main__":
    main()
