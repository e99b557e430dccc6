from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from streak_engine.config import load_settings
from streak_engine.db import Database
from streak_engine.jobs_runner import JOB_NAMES, run_job
from streak_engine.logging_setup import setup_logging


def main() -> None:
    if len(sys.argv) != 2:
        raise SystemExit(f"Usage: python jobs.py <{'|'.join(JOB_NAMES)}>")

    setup_logging()
    settings = load_settings()
    db = Database(settings.database_path, busy_timeout=settings.db_busy_timeout_seconds)
    run_job(sys.argv[1], db, settings)


if __name__ == "__main__":
    main()
