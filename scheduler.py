# scheduler.py - STAGGERED UPLOAD SCHEDULER
# Walks the numbered compilations, assigns each a future publish slot and submits
# them one by one. Progress is persisted after every attempt so re-runs resume exactly.

import os
import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from compiler import ARTIFACT_PREFIX, OUTPUT_DIR
from upload_progress import LedgerEntry, ProgressLedger
from uploader import UploadError

logger = logging.getLogger("scheduler")


def parse_hours(value: str) -> Tuple[int, ...]:
    hours = tuple(int(h) for h in value.split(",") if h.strip())
    if not hours:
        raise ValueError("SCHEDULE_HOURS must list at least one hour")
    for h in hours:
        if not 0 <= h <= 23:
            raise ValueError(f"Invalid hour in SCHEDULE_HOURS: {h}")
    return hours


SCHEDULE_HOURS = parse_hours(os.getenv("SCHEDULE_HOURS", "11,18,21"))
UPLOAD_TITLE = os.getenv("UPLOAD_TITLE", "Satisfying Shorts: Hydraulic Press Crushing Objects")
UPLOAD_DESCRIPTION = os.getenv(
    "UPLOAD_DESCRIPTION",
    "Watch the hydraulic press crush all kinds of objects in short, satisfying clips! "
    "Subscribe for more. #hydraulicpress #satisfying #shorts",
)


def list_artifacts(output_dir: str = OUTPUT_DIR, prefix: str = ARTIFACT_PREFIX) -> List[str]:
    """Artifact file names in pipeline order (by their number, not lexically)."""
    if not os.path.isdir(output_dir):
        return []
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)\.mp4$")
    numbered = []
    for name in os.listdir(output_dir):
        m = pattern.match(name)
        if m:
            numbered.append((int(m.group(1)), name))
    return [name for _, name in sorted(numbered)]


def local_now() -> datetime:
    return datetime.now().astimezone()


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def next_slot(last_slot: datetime, position: int, hours: Sequence[int] = SCHEDULE_HOURS) -> datetime:
    """
    Same local day as `last_slot` at hours[position % len(hours)], pushed one
    day later when that is not strictly after `last_slot`.

    Hours are local wall-clock hours: the offset is re-resolved for the new
    date, so DST changes and UTC ledger timestamps do not shift them.
    """
    hour = hours[position % len(hours)]
    day = last_slot.astimezone().replace(tzinfo=None)
    candidate = day.replace(hour=hour, minute=0, second=0, microsecond=0).astimezone()
    if candidate <= last_slot:
        day += timedelta(days=1)
        candidate = day.replace(hour=hour, minute=0, second=0, microsecond=0).astimezone()
    return candidate


@dataclass(frozen=True)
class ScheduleCursor:
    """Global artifact position the next slot belongs to, and the last slot handed out."""

    position: int
    last_slot: datetime

    def advance(self, hours: Sequence[int] = SCHEDULE_HOURS) -> "ScheduleCursor":
        return ScheduleCursor(self.position + 1, next_slot(self.last_slot, self.position, hours))


@dataclass(frozen=True)
class ScheduledUpload:
    name: str
    publish_at: datetime
    video_id: Optional[str] = None


@dataclass
class UploadReport:
    start_index: int
    scheduled: List[ScheduledUpload] = field(default_factory=list)
    failed: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.failed is None


class UploadScheduler:
    def __init__(
        self,
        uploader,
        ledger: ProgressLedger,
        output_dir: str = OUTPUT_DIR,
        prefix: str = ARTIFACT_PREFIX,
        hours: Sequence[int] = SCHEDULE_HOURS,
        title: str = UPLOAD_TITLE,
        description: str = UPLOAD_DESCRIPTION,
        clock: Callable[[], datetime] = local_now,
    ):
        self.uploader = uploader
        self.ledger = ledger
        self.output_dir = output_dir
        self.prefix = prefix
        self.hours = tuple(hours)
        self.title = title
        self.description = description
        self.clock = clock

    def resume_point(self, names: List[str], entry: LedgerEntry) -> ScheduleCursor:
        start = 0
        if entry.last_uploaded is not None:
            if entry.last_uploaded in names:
                start = names.index(entry.last_uploaded) + 1
            else:
                logger.warning(
                    f"⚠️ Last uploaded '{entry.last_uploaded}' is not in {self.output_dir}. "
                    "Restarting from the first artifact."
                )
        last_slot = entry.last_date or start_of_day(self.clock())
        return ScheduleCursor(start, last_slot)

    def run(self, names: Optional[List[str]] = None, dry_run: bool = False) -> UploadReport:
        if names is None:
            names = list_artifacts(self.output_dir, self.prefix)
        entry = self.ledger.load()
        cursor = self.resume_point(names, entry)
        report = UploadReport(start_index=cursor.position)

        pending = len(names) - cursor.position
        if pending <= 0:
            logger.info("✅ Nothing to upload: every artifact is already scheduled.")
            return report
        logger.info(f"📤 {pending} artifact(s) to schedule, starting at {names[cursor.position]}")

        while cursor.position < len(names):
            i = cursor.position
            name = names[i]
            cursor = cursor.advance(self.hours)
            slot = cursor.last_slot

            if dry_run:
                logger.info(f"📝 [dry-run] {name} -> {slot.isoformat()}")
                report.scheduled.append(ScheduledUpload(name, slot))
                continue

            logger.info(f"🚀 Uploading {name} for {slot.isoformat()}")
            try:
                video_id = self.uploader.schedule_upload(
                    os.path.join(self.output_dir, name), self.title, self.description, slot,
                )
            except UploadError as e:
                previous = names[i - 1] if i > 0 else None
                # Keep the advanced slot so a retry of this artifact never reuses it
                self.ledger.save(LedgerEntry(previous, slot))
                logger.error(f"❌ Upload of {name} failed: {e}. Stopping; re-run to resume.")
                report.failed = name
                report.error = e
                return report

            self.ledger.save(LedgerEntry(name, slot))
            report.scheduled.append(ScheduledUpload(name, slot, video_id))
            logger.info(f"✅ {name} scheduled as {video_id} for {slot.isoformat()}")

        logger.info(f"🏁 Scheduled {len(report.scheduled)} upload(s).")
        return report
