"""
Duration Grouper
----------------
Packs an ordered list of short clips into contiguous groups whose summed
duration stays within a target (default 65s).

Greedy rule: before a clip is added, if running + clip > target and the
current group is not empty, the current group is closed. The clip is then
always appended, so a clip longer than the target ends up alone in its group.
"""

import os
import glob
import logging
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger("grouper")

TARGET_GROUP_SECONDS = float(os.getenv("TARGET_GROUP_SECONDS", "65"))
CLIP_EXTENSIONS = (".mp4",)


@dataclass(frozen=True)
class Clip:
    path: str
    duration: float

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


def discover_clips(input_dir: str, extensions: tuple = CLIP_EXTENSIONS) -> List[str]:
    """Sorted source clip paths in `input_dir`. Missing directory -> []."""
    if not os.path.isdir(input_dir):
        return []
    files = []
    for ext in extensions:
        files.extend(glob.glob(os.path.join(input_dir, f"*{ext}")))
    return sorted(files)


def group_clips(
    paths: List[str],
    probe: Callable[[str], float],
    target: float = TARGET_GROUP_SECONDS,
) -> List[List[Clip]]:
    """
    Probe each clip once, in order, and split into groups.
    A probe failure propagates: grouping never continues on partial data.
    """
    groups: List[List[Clip]] = []
    current: List[Clip] = []
    running = 0.0

    for path in paths:
        clip = Clip(path, probe(path))
        if running + clip.duration > target and current:
            groups.append(current)
            current = []
            running = 0.0
        current.append(clip)
        running += clip.duration

    if current:
        groups.append(current)

    logger.info(f"📦 Grouped {len(paths)} clips into {len(groups)} groups (target {target:.0f}s)")
    for i, group in enumerate(groups, start=1):
        total = sum(c.duration for c in group)
        logger.debug(f"    └─ Group {i}: {len(group)} clips, {total:.1f}s")
    return groups
