#!/usr/bin/env python3
"""Run a scheduled job once.

Meant to be invoked by cron (or any external scheduler). Exits non-zero
if the job fails.

Usage:
    python -m scripts.run_job daily-sync
    python -m scripts.run_job frequent-sync
    python -m scripts.run_job forward-fill
    python -m scripts.run_job backfill-item-ids
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import init_db
from logging_config import setup_logging
from services.scheduled_jobs import JOBS, run_job

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run a scheduled bank-link job")
    parser.add_argument("job", choices=sorted(JOBS), help="Job to run")
    args = parser.parse_args(argv)

    setup_logging()
    init_db()

    try:
        summary = run_job(args.job)
    except Exception:
        # run_job already logged the traceback
        return 1

    for key, value in summary.items():
        print(f"{key}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
