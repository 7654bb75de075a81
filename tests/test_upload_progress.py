"""Tests for the upload progress ledger."""

import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from upload_progress import LedgerEntry, ProgressLedger

BRT = timezone(timedelta(hours=-3))


@pytest.fixture
def ledger(tmp_path):
    return ProgressLedger(str(tmp_path / "upload_progress.json"))


class TestLoad:
    def test_absent_file_is_first_run(self, ledger):
        assert ledger.load() == LedgerEntry()

    @pytest.mark.parametrize("content", [
        "",
        "{not json",
        "[1, 2]",
        '{"lastUploaded": 5, "lastDate": null}',
        '{"lastUploaded": "a.mp4", "lastDate": "yesterday"}',
        '{"lastUploaded": "a.mp4", "lastDate": 1700000000}',
    ])
    def test_corrupt_file_is_treated_as_absent(self, ledger, content):
        with open(ledger.path, "w") as f:
            f.write(content)
        assert ledger.load() == LedgerEntry()

    def test_reads_utc_z_suffix(self, ledger):
        with open(ledger.path, "w") as f:
            json.dump({"lastUploaded": "x-2.mp4", "lastDate": "2026-10-20T14:00:00.000Z"}, f)
        entry = ledger.load()
        assert entry.last_uploaded == "x-2.mp4"
        assert entry.last_date == datetime(2026, 10, 20, 14, tzinfo=timezone.utc)

    def test_naive_date_is_local_time(self, ledger):
        with open(ledger.path, "w") as f:
            json.dump({"lastUploaded": None, "lastDate": "2026-10-20T11:00:00"}, f)
        entry = ledger.load()
        assert entry.last_date.tzinfo is not None
        assert entry.last_date == datetime(2026, 10, 20, 11).astimezone()


class TestSave:
    def test_persists_name_and_slot(self, ledger):
        slot = datetime(2026, 10, 20, 18, tzinfo=BRT)
        ledger.save(LedgerEntry("shorts-compilation-4.mp4", slot))

        with open(ledger.path) as f:
            raw = json.load(f)
        assert raw == {"lastUploaded": "shorts-compilation-4.mp4", "lastDate": "2026-10-20T18:00:00-03:00"}
        assert ledger.load() == LedgerEntry("shorts-compilation-4.mp4", slot)

    def test_null_name_keeps_slot(self, ledger):
        slot = datetime(2026, 10, 20, 11, tzinfo=BRT)
        ledger.save(LedgerEntry(None, slot))
        assert ledger.load() == LedgerEntry(None, slot)

    def test_overwrites_without_temp_leftovers(self, ledger, tmp_path):
        ledger.save(LedgerEntry("a.mp4", datetime(2026, 10, 20, 11, tzinfo=BRT)))
        ledger.save(LedgerEntry("b.mp4", datetime(2026, 10, 20, 18, tzinfo=BRT)))
        assert os.listdir(tmp_path) == ["upload_progress.json"]
        assert ledger.load().last_uploaded == "b.mp4"

    def test_creates_parent_directory(self, tmp_path):
        ledger = ProgressLedger(str(tmp_path / "state" / "progress.json"))
        ledger.save(LedgerEntry())
        assert ledger.load() == LedgerEntry()
