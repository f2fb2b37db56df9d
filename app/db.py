from __future__ import annotations
import logging
import os

from app.storage import CsvStore

STORAGE_DIR = os.getenv("USER_STORAGE_DIR", "User storage")
# Trimming decoded values drops leading/trailing spaces; set STORAGE_TRIM_FIELDS=0 to keep them.
TRIM_FIELDS = str(os.getenv("STORAGE_TRIM_FIELDS", "1")).lower() in ("1", "true", "yes", "on")

store = CsvStore(STORAGE_DIR, strip=TRIM_FIELDS)


def init_db():
    logging.info("CSV storage root: %s (trim fields: %s)", store.root.resolve(), TRIM_FIELDS)


def get_store() -> CsvStore:
    return store
