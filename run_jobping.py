#!/usr/bin/env python3
"""Entry point for one ingest-and-match run."""
from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from jobping.log import get_logger
from jobping.config import PROFILES_PATH, SETTINGS_PATH, get_env

log = get_logger(__name__)


def _check_setup() -> bool:
    """Return True if the profiles file is missing."""
    profiles = Path(get_env("JOBPING_PROFILES") or PROFILES_PATH)
    if not profiles.exists():
        print()
        print(f"  No subscriber profiles found at {profiles}.")
        print("  Copy config/profiles.yaml from the repository or set JOBPING_PROFILES.")
        print()
        return True
    return False


if __name__ == "__main__":
    if _check_setup():
        sys.exit(1)

    from jobping.errors import JobPingError, status_for
    from jobping.pipeline import run

    schedule = "--schedule" in sys.argv[1:]
    try:
        result = run(respect_schedule=schedule, use_mock=not SETTINGS_PATH.exists())
    except JobPingError as exc:
        log.error("Run aborted (%d): %s", status_for(exc), exc)
        sys.exit(1)
    ingestion = result["ingestion"]
    log.info("Run complete.")
    log.info("  Inserted: %d  Updated: %d  Rejected: %d", ingestion["inserted"], ingestion["updated"], ingestion["rejected"])
    for name, report in ingestion["sources"].items():
        log.info("  %-32s %s", name, report)
    log.info("  Subscribers: %d  Delivered: %d  Skipped: %d", result["subscribers"], result["delivered"], result["skipped"])
    if result["errors"]:
        log.info("  Errors: %s", result["errors"])
