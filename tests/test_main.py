"""Tests for the command line entry point."""

import os
from unittest.mock import patch

import pytest

import main
from uploader import CredentialsError


@pytest.fixture(autouse=True)
def _in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def _upload_args(tmp_path, *extra):
    return main.build_parser().parse_args([
        "upload",
        "--output", str(tmp_path / "output"),
        "--progress", str(tmp_path / "progress.json"),
        *extra,
    ])


class TestParser:
    def test_compile_defaults(self):
        args = main.build_parser().parse_args(["compile"])
        assert args.command == "compile"
        assert args.target == pytest.approx(65.0)

    def test_run_has_both_option_sets(self):
        args = main.build_parser().parse_args(["run", "--target", "50", "--dry-run"])
        assert args.target == 50.0
        assert args.dry_run is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args([])


class TestCompileCommand:
    def test_missing_audio_exits_nonzero(self, media_dirs):
        for name in os.listdir(media_dirs["music"]):
            os.remove(os.path.join(media_dirs["music"], name))

        status = main.main([
            "compile",
            "--input", media_dirs["input"],
            "--music", media_dirs["music"],
            "--output", media_dirs["output"],
            "--temp", media_dirs["temp"],
        ])

        assert status == 1
        assert not os.path.exists(media_dirs["output"])

    def test_success(self, media_dirs, fake_gateway):
        fake_gateway.durations = {"a.mp4": 10, "b.mp4": 10, "c.mp4": 10}
        with patch("main.FFmpegGateway", return_value=fake_gateway):
            status = main.main([
                "compile",
                "--input", media_dirs["input"],
                "--music", media_dirs["music"],
                "--output", media_dirs["output"],
                "--temp", media_dirs["temp"],
            ])
        assert status == 0
        assert os.listdir(media_dirs["output"]) == ["shorts-compilation-1.mp4"]


class TestUploadCommand:
    def test_credentials_error_stops_before_scheduling(self, tmp_path):
        with patch("main.YouTubeUploader") as cls:
            cls.return_value.connect.side_effect = CredentialsError("token.json missing")
            status = main.main(["upload", "--progress", str(tmp_path / "progress.json")])
        assert status == 1
        cls.return_value.schedule_upload.assert_not_called()
        assert not os.path.exists(tmp_path / "progress.json")

    def test_uploads_and_records_progress(self, tmp_path, fake_uploader):
        out = tmp_path / "output"
        out.mkdir()
        (out / "shorts-compilation-1.mp4").write_text("x")

        status = main.run_upload(_upload_args(tmp_path), uploader=fake_uploader)

        assert status == 0
        assert fake_uploader.connected
        assert [c[0] for c in fake_uploader.calls] == ["shorts-compilation-1.mp4"]
        assert os.path.exists(tmp_path / "progress.json")

    def test_upload_failure_exits_nonzero(self, tmp_path, fake_uploader):
        out = tmp_path / "output"
        out.mkdir()
        (out / "shorts-compilation-1.mp4").write_text("x")
        fake_uploader.fail_on = {"shorts-compilation-1.mp4"}

        assert main.run_upload(_upload_args(tmp_path), uploader=fake_uploader) == 1

    def test_dry_run_skips_credentials(self, tmp_path, fake_uploader):
        status = main.run_upload(_upload_args(tmp_path, "--dry-run"), uploader=fake_uploader)
        assert status == 0
        assert not fake_uploader.connected


class TestRunCommand:
    def _argv(self, media_dirs, tmp_path):
        return [
            "run",
            "--input", media_dirs["input"],
            "--music", media_dirs["music"],
            "--output", media_dirs["output"],
            "--temp", media_dirs["temp"],
            "--progress", str(tmp_path / "progress.json"),
        ]

    def test_rerun_after_failed_upload_resumes(self, media_dirs, tmp_path, fake_gateway, fake_uploader):
        fake_gateway.durations = {"a.mp4": 30, "b.mp4": 40, "c.mp4": 30}
        fake_uploader.fail_on = {"shorts-compilation-2.mp4"}
        argv = self._argv(media_dirs, tmp_path)

        with patch("main.FFmpegGateway", return_value=fake_gateway), \
                patch("main.YouTubeUploader", return_value=fake_uploader):
            assert main.main(argv) == 1
            first_calls = [c[0] for c in fake_uploader.calls]
            normalized_first = len(fake_gateway.normalized)

            fake_uploader.fail_on = set()
            fake_uploader.calls.clear()
            assert main.main(argv) == 0

        assert first_calls == ["shorts-compilation-1.mp4", "shorts-compilation-2.mp4"]
        assert [c[0] for c in fake_uploader.calls] == [
            "shorts-compilation-2.mp4",
            "shorts-compilation-3.mp4",
        ]
        assert len(fake_gateway.normalized) == normalized_first

    def test_filesystem_error_exits_nonzero(self, media_dirs, tmp_path, fake_gateway):
        fake_gateway.durations = {"a.mp4": 10, "b.mp4": 10, "c.mp4": 10}
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        with patch("main.FFmpegGateway", return_value=fake_gateway):
            status = main.main([
                "compile",
                "--input", media_dirs["input"],
                "--music", media_dirs["music"],
                "--output", str(blocker),
                "--temp", media_dirs["temp"],
            ])

        assert status == 1
        assert blocker.read_text() == "x"
