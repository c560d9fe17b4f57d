import argparse
import logging
import random
import time
from datetime import datetime, timedelta, timezone

from stampede_guard.core.monitor import SafetyMonitor
from stampede_guard.core.sensors import SimulatedSoundSource, normalize_sound
from stampede_guard.core.storage_bus import StorageBus
from stampede_guard.db.mongo import get_store_collection

logger = logging.getLogger(__name__)

BASE_LAT, BASE_LNG = 48.8566, 2.3522  # Paris coordinates
GRAVITY = 9.81


def simulate_tick(monitor, sound_source=None, shake_probability=0.05):
    """Feed one round of simulated motion and GPS samples (and sound, given a source) into a monitor."""
    if sound_source is not None:
        monitor.ingest_sound(normalize_sound(sound_source.read_frequency_bins()))

    if random.random() < shake_probability:
        x, y, z = (random.uniform(10, 20) for _ in range(3))
    else:
        x, y, z = random.uniform(-0.5, 0.5), random.uniform(-0.5, 0.5), GRAVITY
    monitor.ingest_motion(x, y, z)

    lat = BASE_LAT + random.uniform(-0.01, 0.01)
    lng = BASE_LNG + random.uniform(-0.01, 0.01)
    return monitor.update_location(lat, lng, accuracy=random.uniform(5, 30))


def simulate_device(monitor, duration_minutes=5, interval_seconds=1.0, loudness=40.0):
    """Run simulated sensor feeds against a monitor for a fixed duration."""
    source = SimulatedSoundSource(loudness=loudness)
    source.open()
    end_time = datetime.now(timezone.utc) + timedelta(minutes=duration_minutes)
    try:
        while datetime.now(timezone.utc) < end_time:
            state = simulate_tick(monitor, source)
            logger.info(
                f"[✓] {state.id}: {state.safety_level.value} sound={state.sound_level:.0f}% "
                f"shakes={state.shake_count}/3"
            )
            time.sleep(interval_seconds)
    finally:
        source.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulate a device feeding sensor samples into the store.")
    parser.add_argument("--duration", type=int, default=5, help="Duration in minutes")
    parser.add_argument("--interval", type=float, default=1.0, help="Interval in seconds")
    parser.add_argument("--loudness", type=float, default=40.0, help="Mean simulated sound level (0-100)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    bus = StorageBus(get_store_collection())
    device_monitor = SafetyMonitor(bus)
    try:
        simulate_device(device_monitor, args.duration, args.interval, args.loudness)
    finally:
        device_monitor.close()
