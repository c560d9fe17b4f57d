import logging
from typing import Optional, Sequence

import numpy as np

from stampede_guard.config import FFT_SIZE, SOUND_BIN_REFERENCE, SOUND_SAMPLE_INTERVAL_MS
from stampede_guard.models.schemas import Location
from stampede_guard.utils.scheduler import cancel_job

logger = logging.getLogger(__name__)


def normalize_sound(frequency_bins: Sequence[float]) -> float:
    """Average byte frequency magnitude mapped onto 0..100 (128 -> 100, clipped)."""
    data = np.asarray(frequency_bins, dtype=float)
    if data.size == 0:
        return 0.0
    return float(np.clip(data.mean() / SOUND_BIN_REFERENCE * 100, 0.0, 100.0))


def motion_magnitude(x: float, y: float, z: float) -> float:
    """Magnitude of the 3-axis acceleration vector (gravity included)."""
    return float(np.linalg.norm([x, y, z]))


def location_from_fix(latitude: float, longitude: float, accuracy: float) -> Location:
    return Location(lat=latitude, lng=longitude, accuracy=accuracy)


class SimulatedSoundSource:
    """Stand-in microphone analyser producing random byte frequency bins."""

    def __init__(self, loudness: float = 40.0, spread: float = 25.0, seed: Optional[int] = None):
        self.loudness = loudness
        self.spread = spread
        self._rng = np.random.default_rng(seed)
        self.opened = False

    def open(self):
        self.opened = True

    def read_frequency_bins(self):
        level = max(0.0, self._rng.normal(self.loudness, self.spread))
        mean = level / 100 * SOUND_BIN_REFERENCE
        bins = self._rng.normal(mean, 10, FFT_SIZE // 2)
        return np.clip(bins, 0, 255).astype(np.uint8)

    def close(self):
        self.opened = False


class SoundSampler:
    """
    Polls a sound source at a fixed rate and feeds normalised levels to a monitor.

    The source must provide open(), read_frequency_bins() and close(). If the
    source cannot be opened (e.g. microphone permission denied) the failure is
    logged and the sound signal simply never updates.
    """

    def __init__(self, source, monitor, scheduler, interval_ms: int = SOUND_SAMPLE_INTERVAL_MS):
        self.source = source
        self.monitor = monitor
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.job_id = f"sound-sampler-{id(self)}"
        self.running = False

    def start(self) -> bool:
        try:
            self.source.open()
        except Exception as e:
            logger.error(f"[✗] Mic access denied: {e}")
            return False
        self.scheduler.add_job(
            self.sample, "interval", seconds=self.interval_ms / 1000,
            id=self.job_id, replace_existing=True, max_instances=1, coalesce=True,
        )
        self.running = True
        logger.info(f"[✓] Sound sampling every {self.interval_ms} ms")
        return True

    def sample(self) -> Optional[float]:
        try:
            bins = self.source.read_frequency_bins()
        except Exception as e:
            logger.error(f"[✗] Sound source failed, stopping sampler: {e}")
            self.stop()
            return None
        level = normalize_sound(bins)
        self.monitor.ingest_sound(level)
        return level

    def stop(self):
        if self.running:
            cancel_job(self.scheduler, self.job_id)
            self.running = False
        try:
            self.source.close()
        except Exception as e:
            logger.warning(f"Error closing sound source: {e}")
