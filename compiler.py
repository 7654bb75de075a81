# compiler.py - GROUP COMPILATION PIPELINE
# Normalize -> stream-copy concat -> random music mux -> atomic publish.
# Every group owns a private workspace that is removed on every exit path.

import os
import glob
import time
import uuid
import shutil
import logging
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterator, List, Optional

from grouper import Clip, TARGET_GROUP_SECONDS, discover_clips, group_clips
from media_gateway import MediaTransformError
from music_manager import MUSIC_DIR, RandomTrackPicker, TrackPicker, load_audio_pool

logger = logging.getLogger("compiler")

INPUT_DIR = os.getenv("INPUT_DIR", "input")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "output")
TEMP_DIR = os.getenv("TEMP_DIR", "temp")
ARTIFACT_PREFIX = os.getenv("ARTIFACT_PREFIX", "shorts-compilation")
NORMALIZE_WORKERS = int(os.getenv("NORMALIZE_WORKERS", "0"))  # 0 = one worker per clip
STALE_WORKSPACE_SECS = int(os.getenv("STALE_WORKSPACE_SECS", "0"))
FORCE_OVERWRITE = os.getenv("FORCE_OVERWRITE", "no").lower() == "yes"

WORKSPACE_PREFIX = "group_"
PARTIAL_SUFFIX = ".part"


class PreconditionError(Exception):
    """The run cannot start: nothing to compile or no music."""


class GroupCompilationError(Exception):
    def __init__(self, group_index: int, stage: str, cause: Exception):
        self.group_index = group_index
        self.stage = stage
        self.cause = cause
        super().__init__(f"Group {group_index} failed at {stage}: {cause}")


def artifact_name(index: int, prefix: str = ARTIFACT_PREFIX) -> str:
    return f"{prefix}-{index}.mp4"


def _partial_path(final_path: str) -> str:
    head, tail = os.path.split(final_path)
    return os.path.join(head, f".{tail}{PARTIAL_SUFFIX}")


@contextmanager
def workspace(root: str, group_index: int) -> Iterator[str]:
    """Private scratch directory for one group. Always removed on exit."""
    path = os.path.join(root, f"{WORKSPACE_PREFIX}{group_index:03d}_{uuid.uuid4().hex[:8]}")
    os.makedirs(path)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        if os.path.exists(path):
            logger.warning(f"⚠️ Workspace could not be removed: {path}")


def sweep_stale_workspaces(
    temp_dir: str = TEMP_DIR,
    output_dir: str = OUTPUT_DIR,
    max_age: int = STALE_WORKSPACE_SECS,
) -> int:
    """
    Remove workspaces and partial artifacts left behind by a killed run.
    Only entries older than `max_age` seconds are touched.
    """
    now = time.time()
    removed = 0
    candidates = glob.glob(os.path.join(temp_dir, f"{WORKSPACE_PREFIX}*"))
    candidates += glob.glob(os.path.join(output_dir, f".*{PARTIAL_SUFFIX}"))

    for p in candidates:
        try:
            if now - os.path.getmtime(p) < max_age:
                continue
            if os.path.isdir(p):
                shutil.rmtree(p)
            else:
                os.remove(p)
        except FileNotFoundError:
            continue
        removed += 1
        logger.info(f"🧹 Pruned orphaned temp state: {os.path.basename(p)}")
    return removed


class CompilationPipeline:
    """
    Turns one group of clips into one numbered compilation.

    gateway: media transform capability (see media_gateway.FFmpegGateway).
    pick: selects one track from the pool; defaults to uniform random choice.
    """

    def __init__(
        self,
        gateway,
        audio_pool: List[str],
        output_dir: str = OUTPUT_DIR,
        temp_dir: str = TEMP_DIR,
        pick: Optional[TrackPicker] = None,
        prefix: str = ARTIFACT_PREFIX,
        workers: int = NORMALIZE_WORKERS,
    ):
        if not audio_pool:
            raise PreconditionError("No audio tracks available for background music.")
        self.gateway = gateway
        self.audio_pool = list(audio_pool)
        self.output_dir = output_dir
        self.temp_dir = temp_dir
        self.pick = pick or RandomTrackPicker()
        self.prefix = prefix
        self.workers = workers

    def artifact_path(self, index: int) -> str:
        return os.path.join(self.output_dir, artifact_name(index, self.prefix))

    def _normalize_all(self, group: List[Clip], ws: str) -> List[str]:
        outputs = [os.path.join(ws, f"clip_{i:03d}.mp4") for i in range(len(group))]
        max_workers = min(self.workers, len(group)) if self.workers > 0 else len(group)

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(self.gateway.normalize, clip.path, out)
                for clip, out in zip(group, outputs)
            ]
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                for f in futures:
                    f.cancel()
                raise
        return outputs

    def compile_group(self, group: List[Clip], index: int) -> str:
        """Produce the artifact for group `index` (1-based) and return its path."""
        final_path = self.artifact_path(index)
        partial = _partial_path(final_path)
        total = sum(c.duration for c in group)
        logger.info(f"🎬 Compiling group {index}: {len(group)} clips, {total:.1f}s")

        os.makedirs(self.output_dir, exist_ok=True)
        os.makedirs(self.temp_dir, exist_ok=True)

        stage = "workspace"
        try:
            with workspace(self.temp_dir, index) as ws:
                stage = "normalize"
                normalized = self._normalize_all(group, ws)

                stage = "concat"
                joined = self.gateway.concat_copy(
                    normalized,
                    os.path.join(ws, "concat.txt"),
                    os.path.join(ws, "joined_noaudio.mp4"),
                )

                stage = "mux"
                track = self.pick(self.audio_pool)
                self.gateway.mux_audio(joined, track, partial)

                stage = "verify"
                duration = self.gateway.probe_duration(partial)
                if duration <= 0:
                    raise MediaTransformError("verify", partial, f"invalid duration {duration}")

                stage = "publish"
                os.replace(partial, final_path)
        except (MediaTransformError, OSError) as e:
            if os.path.exists(partial):
                os.remove(partial)
            logger.error(f"❌ Group {index} failed at {stage}: {e}")
            raise GroupCompilationError(index, stage, e) from e

        logger.info(f"✅ Compilation {index} generated: {final_path} ({duration:.1f}s)")
        return final_path


def compile_all(
    gateway,
    input_dir: str = INPUT_DIR,
    music_dir: str = MUSIC_DIR,
    output_dir: str = OUTPUT_DIR,
    temp_dir: str = TEMP_DIR,
    target: float = TARGET_GROUP_SECONDS,
    pick: Optional[TrackPicker] = None,
    prefix: str = ARTIFACT_PREFIX,
    workers: int = NORMALIZE_WORKERS,
    force_overwrite: bool = FORCE_OVERWRITE,
    stale_after: int = STALE_WORKSPACE_SECS,
) -> List[str]:
    """
    Full compile run: discover, group, then compile groups one after another.
    Artifacts from groups finished before a failure stay in place, and groups
    whose artifact already exists are skipped so a re-run resumes.
    """
    clips = discover_clips(input_dir)
    if not clips:
        raise PreconditionError(f"No input clips found in '{input_dir}'.")

    pool = load_audio_pool(music_dir)
    if not pool:
        raise PreconditionError(f"No audio tracks found in '{music_dir}'.")

    pipeline = CompilationPipeline(
        gateway, pool,
        output_dir=output_dir, temp_dir=temp_dir,
        pick=pick, prefix=prefix, workers=workers,
    )

    sweep_stale_workspaces(temp_dir, output_dir, stale_after)

    groups = group_clips(clips, gateway.probe_duration, target)

    artifacts = []
    for i, group in enumerate(groups, start=1):
        existing = pipeline.artifact_path(i)
        if os.path.exists(existing) and not force_overwrite:
            logger.info(f"⏭️ Compilation {i} already exists, skipping: {existing}")
            artifacts.append(existing)
            continue
        artifacts.append(pipeline.compile_group(group, i))

    logger.info(f"🏁 All {len(artifacts)} compilations generated in {output_dir}")
    return artifacts
