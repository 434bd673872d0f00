"""Environment configuration, read once at import time."""
from __future__ import annotations

import os
from pathlib import Path
from zoneinfo import ZoneInfo


class Settings:
    # Relative APP_DB_PATH values resolve against the repository root.
    ROOT_DIR = Path(__file__).resolve().parent
    DB_PATH = os.getenv("APP_DB_PATH", "data/toolcrib.db")
    # seconds SQLite waits on a locked database file before raising
    DB_BUSY_TIMEOUT = float(os.getenv("APP_DB_BUSY_TIMEOUT", "30"))

    # ---- ledger gate
    BATCH_LOCK_TIMEOUT = float(os.getenv("APP_BATCH_LOCK_TIMEOUT", "30"))
    SINGLE_LOCK_TIMEOUT = float(os.getenv("APP_SINGLE_LOCK_TIMEOUT", "10"))

    # Local timezone of the crib. "Today" for the overdue sweep is taken here.
    TZ = os.getenv("APP_TZ", "UTC")


settings = Settings()
LOCAL_TZ = ZoneInfo(settings.TZ)
