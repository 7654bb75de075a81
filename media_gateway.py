# media_gateway.py - FFMPEG / FFPROBE ADAPTER
# Thin wrapper around the ffmpeg binaries: probe, normalize, concat (stream copy), mux.

import os
import shutil
import logging
import subprocess
from typing import List, Optional

logger = logging.getLogger("media_gateway")

FFMPEG_BIN = os.getenv("FFMPEG_BIN", "ffmpeg")
if not shutil.which(FFMPEG_BIN):
    FFMPEG_BIN = "ffmpeg"

FFPROBE_BIN = os.getenv("FFPROBE_BIN", "ffprobe")
if not shutil.which(FFPROBE_BIN):
    FFPROBE_BIN = "ffprobe"

FF_TIMEOUT_SECS = int(os.getenv("FF_TIMEOUT_SECS", "600"))
TARGET_RESOLUTION = os.getenv("TARGET_RESOLUTION", "1080:1920")
TARGET_FPS = int(os.getenv("TARGET_FPS", "30"))
REENCODE_PRESET = os.getenv("REENCODE_PRESET", "fast")
REENCODE_CRF = os.getenv("REENCODE_CRF", "23")


class MediaTransformError(Exception):
    """A media operation failed. `stage` tags which step, `path` the offending file."""

    def __init__(self, stage: str, path: str, detail: str = ""):
        self.stage = stage
        self.path = path
        self.detail = detail
        msg = f"{stage} failed for '{path}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ProbeError(MediaTransformError):
    def __init__(self, path: str, detail: str = ""):
        super().__init__("probe", path, detail)


def parse_resolution(value: str) -> tuple:
    """'1080:1920' or '1080x1920' -> (1080, 1920)."""
    w, h = value.lower().replace("x", ":").split(":")
    return int(w), int(h)


def concat_list_line(path: str) -> str:
    """One line of an ffmpeg concat demuxer list, single quotes escaped."""
    escaped = path.replace("'", "'\\''")
    return f"file '{escaped}'"


class FFmpegGateway:
    """
    Media transform capability backed by ffmpeg/ffprobe subprocesses.
    Every operation either completes or raises MediaTransformError.
    """

    def __init__(
        self,
        ffmpeg_bin: str = FFMPEG_BIN,
        ffprobe_bin: str = FFPROBE_BIN,
        target_res: Optional[tuple] = None,
        fps: int = TARGET_FPS,
        preset: str = REENCODE_PRESET,
        crf: str = REENCODE_CRF,
        timeout: int = FF_TIMEOUT_SECS,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.target_res = target_res or parse_resolution(TARGET_RESOLUTION)
        self.fps = fps
        self.preset = preset
        self.crf = str(crf)
        self.timeout = timeout or None

    # ==================== HELPERS ====================

    def _run(self, cmd: List[str], stage: str, path: str) -> str:
        try:
            result = subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
                encoding="utf-8",
                errors="replace",
            )
            return result.stdout
        except subprocess.CalledProcessError as e:
            # Last 1000 chars of stderr carry the actual ffmpeg complaint
            err_msg = e.stderr[-1000:] if e.stderr else "No stderr"
            logger.error(f"❌ Command Failed (Exit {e.returncode}): {' '.join(cmd)}")
            logger.error(f"   Stderr: ...{err_msg}")
            raise MediaTransformError(stage, path, f"exit {e.returncode}") from e
        except subprocess.TimeoutExpired as e:
            logger.warning(f"❌ Command timed out after {self.timeout}s: {cmd[0]}")
            raise MediaTransformError(stage, path, f"timed out after {self.timeout}s") from e
        except OSError as e:
            logger.error(f"❌ Command execution error: {e}")
            raise MediaTransformError(stage, path, str(e)) from e

    # ==================== OPERATIONS ====================

    def probe_duration(self, path: str) -> float:
        """Container duration in seconds."""
        cmd = [
            self.ffprobe_bin, "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            path,
        ]
        try:
            out = self._run(cmd, "probe", path)
        except MediaTransformError as e:
            raise ProbeError(path, e.detail) from e.__cause__

        raw = out.strip()
        try:
            duration = float(raw)
        except ValueError:
            raise ProbeError(path, f"unreadable duration {raw!r}")
        if duration < 0:
            raise ProbeError(path, f"negative duration {duration}")
        return duration

    def normalize(self, input_path: str, output_path: str) -> str:
        """
        Strip audio, re-encode to the fixed H.264 preset and force the frame geometry:
        scale to cover the target, then center-crop to exact dimensions.
        """
        w, h = self.target_res
        vf = ",".join([
            f"scale={w}:{h}:force_original_aspect_ratio=increase",
            f"crop={w}:{h}",
            "setsar=1",
            f"fps={self.fps}",
            "format=yuv420p",
        ])
        cmd = [
            self.ffmpeg_bin, "-y", "-i", input_path,
            "-an",
            "-vf", vf,
            "-c:v", "libx264", "-preset", self.preset, "-crf", self.crf,
            "-pix_fmt", "yuv420p", "-r", str(self.fps),
            output_path,
        ]
        self._run(cmd, "normalize", input_path)
        return output_path

    def concat_copy(self, inputs: List[str], list_path: str, output_path: str) -> str:
        """Join already-uniform clips in order without re-encoding."""
        with open(list_path, "w", encoding="utf-8") as f:
            f.write("\n".join(concat_list_line(os.path.abspath(p)) for p in inputs))
            f.write("\n")
        cmd = [
            self.ffmpeg_bin, "-y",
            "-f", "concat", "-safe", "0", "-i", list_path,
            "-c", "copy",
            output_path,
        ]
        self._run(cmd, "concat", list_path)
        return output_path

    def mux_audio(self, video_path: str, audio_path: str, output_path: str) -> str:
        """Copy video, encode the track to AAC, stop at the shorter of the two."""
        cmd = [
            self.ffmpeg_bin, "-y",
            "-i", video_path,
            "-i", audio_path,
            "-map", "0:v:0", "-map", "1:a:0",
            "-c:v", "copy", "-c:a", "aac",
            "-shortest",
            "-f", "mp4",
            output_path,
        ]
        self._run(cmd, "mux", video_path)
        return output_path
