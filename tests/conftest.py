"""Shared fixtures: in-memory stand-ins for the media and upload gateways."""

import os
import threading

import pytest

from media_gateway import MediaTransformError, ProbeError
from uploader import UploadError


class FakeGateway:
    """Writes placeholder files instead of running ffmpeg. Records every call."""

    def __init__(self, durations=None, output_duration=60.0):
        self.durations = dict(durations or {})
        self.output_duration = output_duration
        self.fail_normalize = set()
        self.fail_mux = False
        self.normalized = []
        self.concatenated = []
        self.muxed = []
        self.probed = []
        self._lock = threading.Lock()

    def probe_duration(self, path):
        self.probed.append(path)
        name = os.path.basename(path)
        if name in self.durations:
            value = self.durations[name]
            if isinstance(value, Exception):
                raise value
            return value
        if os.path.exists(path):
            return self.output_duration
        raise ProbeError(path, "no such file")

    def normalize(self, input_path, output_path):
        if os.path.basename(input_path) in self.fail_normalize:
            raise MediaTransformError("normalize", input_path, "corrupt stream")
        with open(output_path, "w") as f:
            f.write(f"normalized {input_path}")
        with self._lock:
            self.normalized.append((input_path, output_path))
        return output_path

    def concat_copy(self, inputs, list_path, output_path):
        for p in inputs:
            assert os.path.exists(p), p
        with open(list_path, "w") as f:
            f.write("\n".join(inputs))
        with open(output_path, "w") as f:
            f.write("joined")
        self.concatenated.append(list(inputs))
        return output_path

    def mux_audio(self, video_path, audio_path, output_path):
        if self.fail_mux:
            # ffmpeg leaves a truncated file behind when it dies mid-write
            with open(output_path, "w") as f:
                f.write("truncated")
            raise MediaTransformError("mux", video_path, "exit 1")
        with open(output_path, "w") as f:
            f.write(f"final with {audio_path}")
        self.muxed.append(audio_path)
        return output_path


class FakeUploader:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self.connected = False

    def connect(self):
        self.connected = True

    def schedule_upload(self, file_path, title, description, publish_at):
        name = os.path.basename(file_path)
        self.calls.append((name, publish_at))
        if name in self.fail_on:
            raise UploadError(file_path, "HTTP 500")
        return f"vid-{len(self.calls)}"


@pytest.fixture
def media_dirs(tmp_path):
    """input/ with clips a, b, c and tracks/ with two candidate tracks."""
    input_dir = tmp_path / "input"
    music_dir = tmp_path / "tracks"
    input_dir.mkdir()
    music_dir.mkdir()
    for name in ("a.mp4", "b.mp4", "c.mp4"):
        (input_dir / name).write_bytes(b"\x00" * 16)
    (music_dir / "calm.mp3").write_bytes(b"ID3")
    (music_dir / "drums.wav").write_bytes(b"RIFF")
    return {
        "input": str(input_dir),
        "music": str(music_dir),
        "output": str(tmp_path / "output"),
        "temp": str(tmp_path / "temp"),
    }


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_uploader():
    return FakeUploader()
