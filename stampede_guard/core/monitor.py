import logging
import random
import threading
import time
from typing import Optional

from stampede_guard.config import (
    ALERTS_KEY,
    DEFAULT_PANIC_THRESHOLD,
    DEFAULT_SHAKE_THRESHOLD,
    ELEVATED_SOUND_RATIO,
    PANIC_THRESHOLD_KEY,
    SHAKE_DEBOUNCE_MS,
    SHAKE_DECAY_MS,
    SHAKE_THRESHOLD_KEY,
    SHAKES_FOR_EMERGENCY,
    USER_ID_KEY,
    USER_NAME_KEY,
    USER_STATE_KEY,
)
from stampede_guard.models.schemas import Alert, AlertLocation, Location, SafetyLevel, UserState
from stampede_guard.utils.scheduler import cancel_job, schedule_once
from .sensors import location_from_fix, motion_magnitude, normalize_sound

logger = logging.getLogger(__name__)

SOUND_PANIC_REASON = "Excessive Panic Sound Level (> {threshold}%)"
SHAKE_REASON = "Device Shaken Thrice"
MANUAL_PANIC_REASON = "Manual Panic Button"


def now_ms() -> int:
    return int(time.time() * 1000)


class SafetyMonitor:
    """
    User-side safety classifier.

    Consumes sound levels, motion samples and location fixes, derives the
    GREEN/YELLOW/RED safety level and records an Alert the first time an
    emergency is triggered. The monitor is the only writer of the user
    identity, the user state snapshot and the alert list.

    Args:
        bus: StorageBus shared with the admin view.
        scheduler: APScheduler scheduler for the shake decay timer. Optional;
            without it the counter only decays lazily on the next shake.
        clock: callable returning epoch milliseconds.
    """

    def __init__(self, bus, scheduler=None, clock=None):
        self.bus = bus
        self.scheduler = scheduler
        self._clock = clock or now_ms
        self._lock = threading.RLock()

        stored_id = bus.read_or_default(USER_ID_KEY, str)
        self.needs_setup = stored_id is None
        self.user_id = stored_id or f"USER-{random.randrange(1000)}"
        self.user_name = bus.read_or_default(USER_NAME_KEY, str, "")

        self.safety_level = SafetyLevel.GREEN
        self.sound_level = 0.0
        self.shake_count = 0
        self.location: Optional[Location] = None
        self.emergency_triggered = False
        self._last_shake_ms: Optional[int] = None

        self.panic_threshold = self._read_threshold(PANIC_THRESHOLD_KEY, DEFAULT_PANIC_THRESHOLD)
        self.shake_threshold = self._read_threshold(SHAKE_THRESHOLD_KEY, DEFAULT_SHAKE_THRESHOLD)

        self._persist_identity()
        self._subscription = bus.subscribe(
            self._on_store_change, keys=[PANIC_THRESHOLD_KEY, SHAKE_THRESHOLD_KEY]
        )
        self._publish()

    @property
    def decay_job_id(self) -> str:
        return f"shake-decay-{id(self)}"

    # ---------- identity ----------
    def set_identity(self, user_id: Optional[str] = None, user_name: Optional[str] = None) -> UserState:
        with self._lock:
            if user_id:
                self.user_id = user_id
            if user_name is not None:
                self.user_name = user_name
            self.needs_setup = False
            self._persist_identity()
            return self._publish()

    def _persist_identity(self):
        self.bus.put(USER_ID_KEY, self.user_id)
        self.bus.put(USER_NAME_KEY, self.user_name)

    # ---------- thresholds ----------
    def _read_threshold(self, key, default) -> int:
        return self.bus.read_or_default(key, int, default)

    def _refresh_thresholds(self):
        self.panic_threshold = self._read_threshold(PANIC_THRESHOLD_KEY, DEFAULT_PANIC_THRESHOLD)
        self.shake_threshold = self._read_threshold(SHAKE_THRESHOLD_KEY, DEFAULT_SHAKE_THRESHOLD)

    def _on_store_change(self, key):
        with self._lock:
            self._refresh_thresholds()
            logger.debug(f"Thresholds synced: panic={self.panic_threshold}, shake={self.shake_threshold}")
            self._evaluate()
            self._publish()

    # ---------- sensors ----------
    def ingest_sound(self, level: float) -> UserState:
        """Feed one normalised sound level; values outside 0..100 are clipped."""
        level = min(100.0, max(0.0, float(level)))
        with self._lock:
            self.sound_level = level
            self.panic_threshold = self._read_threshold(PANIC_THRESHOLD_KEY, DEFAULT_PANIC_THRESHOLD)
            threshold = self.panic_threshold

            if level > threshold:
                self.trigger_emergency(SOUND_PANIC_REASON.format(threshold=threshold))
            elif level > threshold * ELEVATED_SOUND_RATIO and self.safety_level != SafetyLevel.RED:
                self.safety_level = SafetyLevel.YELLOW

            self._evaluate()
            return self._publish()

    def ingest_sound_bins(self, frequency_bins) -> UserState:
        return self.ingest_sound(normalize_sound(frequency_bins))

    def ingest_motion(self, x: Optional[float], y: Optional[float], z: Optional[float]) -> UserState:
        """Feed one acceleration sample (gravity included). Incomplete samples are ignored."""
        with self._lock:
            if x is None or y is None or z is None:
                return self.snapshot()

            self.shake_threshold = self._read_threshold(SHAKE_THRESHOLD_KEY, DEFAULT_SHAKE_THRESHOLD)
            if motion_magnitude(x, y, z) <= self.shake_threshold:
                return self.snapshot()

            now = self._clock()
            if self._last_shake_ms is not None:
                elapsed = now - self._last_shake_ms
                if elapsed < SHAKE_DEBOUNCE_MS:
                    return self.snapshot()
                if elapsed >= SHAKE_DECAY_MS:
                    # decay timer may not have fired yet
                    self.shake_count = 0

            self._last_shake_ms = now
            self.shake_count = min(self.shake_count + 1, SHAKES_FOR_EMERGENCY)
            logger.debug(f"Qualifying shake {self.shake_count}/{SHAKES_FOR_EMERGENCY} for {self.user_id}")
            if self.shake_count >= SHAKES_FOR_EMERGENCY:
                self.trigger_emergency(SHAKE_REASON)

            if self.scheduler is not None:
                schedule_once(self.scheduler, self.decay_shakes, SHAKE_DECAY_MS, self.decay_job_id)

            self._evaluate()
            return self._publish()

    def decay_shakes(self) -> UserState:
        """Reset the shake counter after the idle period."""
        with self._lock:
            if self.shake_count:
                logger.debug(f"Shake counter decayed for {self.user_id}")
                self.shake_count = 0
                self._evaluate()
            return self._publish()

    def update_location(self, latitude: float, longitude: float, accuracy: float) -> UserState:
        with self._lock:
            self.location = location_from_fix(latitude, longitude, accuracy)
            return self._publish()

    def location_unavailable(self, error: str) -> UserState:
        """Geolocation failed; the last fix (if any) is kept."""
        logger.error(f"[✗] Location access denied: {error}")
        return self.snapshot()

    # ---------- emergency ----------
    def trigger_emergency(self, reason: str) -> Optional[Alert]:
        """
        Declare an emergency and record an alert.

        Ignored while an emergency is already active; returns the new Alert or
        None when nothing was recorded.
        """
        with self._lock:
            if self.emergency_triggered:
                return None
            self.emergency_triggered = True
            self.safety_level = SafetyLevel.RED

            snapshot = None
            if self.location is not None:
                snapshot = AlertLocation(lat=self.location.lat, lng=self.location.lng)
            alert = Alert(
                user_id=self.user_id,
                user_name=self.user_name,
                timestamp=self._clock(),
                safety_level=SafetyLevel.RED,
                location=snapshot,
                reason=reason,
            )

            existing = self.bus.read_or_default(ALERTS_KEY, list[Alert], [])
            self.bus.put(ALERTS_KEY, [alert, *existing])
            logger.warning(f"EMERGENCY: Triggered due to {reason}")
            self._publish()
            return alert

    def panic(self) -> Optional[Alert]:
        return self.trigger_emergency(MANUAL_PANIC_REASON)

    def mark_safe(self) -> UserState:
        """Clear the emergency and re-classify from the current sound level. Recorded alerts are kept."""
        with self._lock:
            self.emergency_triggered = False
            self.shake_count = 0
            self._evaluate()
            logger.info(f"[✓] {self.user_id} marked safe")
            return self._publish()

    # ---------- state ----------
    def _evaluate(self):
        if self.emergency_triggered:
            return
        if self.shake_count >= 1 or self.sound_level > self.panic_threshold * ELEVATED_SOUND_RATIO:
            self.safety_level = SafetyLevel.YELLOW
        else:
            self.safety_level = SafetyLevel.GREEN

    def snapshot(self) -> UserState:
        with self._lock:
            return UserState(
                id=self.user_id,
                user_name=self.user_name,
                safety_level=self.safety_level,
                sound_level=self.sound_level,
                shake_count=self.shake_count,
                location=self.location,
                last_update=self._clock(),
            )

    def _publish(self) -> UserState:
        state = self.snapshot()
        self.bus.put(USER_STATE_KEY, state)
        return state

    def close(self):
        self.bus.unsubscribe(self._subscription)
        if self.scheduler is not None:
            cancel_job(self.scheduler, self.decay_job_id)
