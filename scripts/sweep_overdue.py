#!/usr/bin/env python3
# scripts/sweep_overdue.py  (run daily from cron / a scheduler)
import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from db import Base, SessionLocal, engine  # noqa: E402
import orm  # noqa: E402,F401
import batch  # noqa: E402


def main() -> None:
    ap = argparse.ArgumentParser(description="Mark loans past their expected return date as Overdue.")
    ap.add_argument("--as-of", default=None, help="Reference date YYYY-MM-DD (default: now)")
    ap.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the ledger lock")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    now = datetime.fromisoformat(args.as_of) if args.as_of else None
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        updated = batch.sweep_overdue(db, now=now, timeout=args.timeout)
    finally:
        db.close()
    print(f"Marked overdue: {updated}")


if __name__ == "__main__":
    main()
