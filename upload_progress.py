"""
Upload Progress Ledger
----------------------
Single JSON record that lets the upload scheduler resume exactly where it stopped:

    {"lastUploaded": "shorts-compilation-3.mp4", "lastDate": "2026-10-20T18:00:00-03:00"}

Absent or corrupt file -> empty entry (first run). Writes are atomic (temp file + os.replace).
"""

import os
import json
import logging
import tempfile
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

logger = logging.getLogger("upload_progress")

PROGRESS_FILE = os.getenv("PROGRESS_FILE", "upload_progress.json")


@dataclass(frozen=True)
class LedgerEntry:
    last_uploaded: Optional[str] = None
    last_date: Optional[datetime] = None

    def to_json(self) -> dict:
        return {
            "lastUploaded": self.last_uploaded,
            "lastDate": self.last_date.isoformat() if self.last_date else None,
        }

    @classmethod
    def from_json(cls, data: dict) -> "LedgerEntry":
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        name = data.get("lastUploaded")
        if name is not None and not isinstance(name, str):
            raise ValueError(f"lastUploaded must be a string, got {name!r}")
        raw_date = data.get("lastDate")
        last_date = None
        if raw_date:
            last_date = datetime.fromisoformat(raw_date.replace("Z", "+00:00"))
            if last_date.tzinfo is None:
                # Naive timestamps are local wall-clock time
                last_date = last_date.astimezone()
        return cls(name, last_date)


class ProgressLedger:
    def __init__(self, path: str = PROGRESS_FILE):
        self.path = path

    def load(self) -> LedgerEntry:
        if not os.path.exists(self.path):
            return LedgerEntry()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read().strip()
            if not content:
                logger.warning("Progress file empty. Starting fresh.")
                return LedgerEntry()
            return LedgerEntry.from_json(json.loads(content))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"⚠️ Progress file unreadable ({e}). Starting from the first artifact.")
            return LedgerEntry()

    def save(self, entry: LedgerEntry) -> None:
        """Overwrite the record atomically. Write errors propagate."""
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".progress_", suffix=".tmp", text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry.to_json(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"Progress saved: {entry.to_json()}")
