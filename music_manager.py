import os
import glob
import random
import logging
from typing import Callable, List, Optional

logger = logging.getLogger("music_manager")

MUSIC_DIR = os.getenv("MUSIC_DIR", "tracks")
AUDIO_EXTENSIONS = (".mp3", ".wav")

TrackPicker = Callable[[List[str]], str]


def load_audio_pool(music_dir: str = MUSIC_DIR, extensions: tuple = AUDIO_EXTENSIONS) -> List[str]:
    """Candidate background tracks, sorted. Missing directory -> empty pool."""
    if not os.path.exists(music_dir):
        logger.warning(f"⚠️ Music folder not found: {music_dir}")
        return []
    files = []
    for ext in extensions:
        files.extend(glob.glob(os.path.join(music_dir, f"*{ext}")))
    return sorted(files)


class RandomTrackPicker:
    """
    Uniform choice with replacement; the same track may come back for the next group.
    Pass a seeded random.Random for reproducible selection.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def __call__(self, pool: List[str]) -> str:
        if not pool:
            raise ValueError("Cannot pick a track from an empty pool")
        track = self.rng.choice(pool)
        logger.info(f"🎵 Music Selected: {os.path.basename(track)}")
        return track
