"""
Behavioral Heuristic Adapter.

Turns raw pointer/touch/click events into frustration and joy proxies, plus
pseudo tension and gaze-wander values derived from pointer velocity. The
vision adapter uses these pseudo metrics when the face landmarker cannot run.

Events may arrive from any thread (the host's input queue); get_metrics() is
read by the engine tick and by the vision fallback loop.

Velocity is in px/ms, smoothed with an EMA (0.8 old + 0.2 new) shared by mouse
and touch so both pointer types feed one signal.
"""

import logging
import math
import threading
import time
from collections import deque
from enum import Enum
from typing import Dict, Optional

import config
from utils.biometric_sample import BiometricSample, SampleSource, clamp100

logger = logging.getLogger(__name__)

EMA_KEEP = 0.8
EMA_NEW = 0.2
VELOCITY_CAP = 10.0
# Velocity decays by this factor on each recompute once the pointer has been still this long
DECAY_FACTOR = 0.9
DECAY_AFTER_SEC = 0.1

FRUSTRATION_VELOCITY_FLOOR = 2.0
FRUSTRATION_PER_VELOCITY = 12.0
RAGE_CLICK_FREE = 2
RAGE_CLICK_PENALTY = 15.0
JOY_VELOCITY_FLOOR = 1.0
JOY_PER_VELOCITY = 8.0

WRONG_STREAK_FRUSTRATION_GAIN = 1.5
CORRECT_STREAK_JOY_GAIN = 1.4

# Idle dwell: slow pointer, recently moved -> hover rumination
DWELL_MAX_VELOCITY = 0.5
DWELL_WINDOW_SEC = 2.0
DWELL_UNIT_SEC = 0.1

PSEUDO_TENSION_PER_VELOCITY = 8.0
PSEUDO_GAZE_PER_VELOCITY = 15.0

_TRACKED = ("tension", "gaze_wander", "joy", "frustration")


class GameContext(Enum):
    """Semantic context reported by the host (e.g. a game)."""
    IDLE = "idle"
    WRONG_ANSWER_STREAK = "wrong_answer_streak"
    CORRECT_ANSWER_STREAK = "correct_answer_streak"
    NEUTRAL = "neutral"


class BehavioralHeuristicAdapter:
    """
    Pointer/touch heuristics with a fixed recompute window.

    Usage:
        adapter = BehavioralHeuristicAdapter()
        adapter.on_pointer_move(120, 300)
        adapter.on_click()
        sample = adapter.get_metrics()
    """

    def __init__(self, cache_sec: Optional[float] = None, click_window_sec: Optional[float] = None):
        self._cache_sec = float(config.BEHAVIOR_CACHE_SEC if cache_sec is None else cache_sec)
        self._click_window_sec = float(config.RAGE_CLICK_WINDOW_SEC if click_window_sec is None else click_window_sec)
        self._lock = threading.Lock()

        self._last_x = 0.0
        self._last_y = 0.0
        self._last_move_time: Optional[float] = None
        self._velocity = 0.0
        self._clicks: deque = deque()
        self._touch_capable = False
        self._context = GameContext.IDLE

        self._cached: Optional[BiometricSample] = None
        self._cached_at: Optional[float] = None

        # Running sums for the non-finite fallback
        self._sums: Dict[str, float] = {k: 0.0 for k in _TRACKED}
        self._samples = 0

    # ------------------------------------------------------------------
    # Input events
    # ------------------------------------------------------------------
    def on_pointer_move(
        self,
        x: float,
        y: float,
        pointer_type: str = "mouse",
        timestamp: Optional[float] = None,
    ) -> None:
        """
        Record a pointer position (mouse or touch).

        Args:
            x, y: position in pixels
            pointer_type: "mouse", "touch" or "pen"
            timestamp: monotonic seconds (default: now)
        """
        now = time.monotonic() if timestamp is None else float(timestamp)
        with self._lock:
            if pointer_type == "touch":
                self._touch_capable = True
            if self._last_move_time is not None:
                dt_ms = (now - self._last_move_time) * 1000.0
                if dt_ms > 0:
                    distance = math.hypot(x - self._last_x, y - self._last_y)
                    self._velocity = self._velocity * EMA_KEEP + (distance / dt_ms) * EMA_NEW
            if math.isfinite(x) and math.isfinite(y):
                self._last_x, self._last_y = x, y
            self._last_move_time = now

    def on_touch_start(self, x: float, y: float, timestamp: Optional[float] = None) -> None:
        """A new touch re-anchors the position; the finger jump is not a movement."""
        now = time.monotonic() if timestamp is None else float(timestamp)
        with self._lock:
            self._touch_capable = True
            self._last_x, self._last_y = x, y
            self._last_move_time = now

    def on_click(self, timestamp: Optional[float] = None) -> None:
        now = time.monotonic() if timestamp is None else float(timestamp)
        with self._lock:
            self._clicks.append(now)
            self._prune_clicks(now)

    def set_context(self, context: GameContext) -> None:
        with self._lock:
            self._context = GameContext(context)

    @property
    def context(self) -> GameContext:
        return self._context

    @property
    def touch_capable(self) -> bool:
        return self._touch_capable

    @property
    def velocity(self) -> float:
        """Current smoothed pointer velocity (px/ms)."""
        return self._velocity

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------
    def get_metrics(self, now: Optional[float] = None) -> BiometricSample:
        """
        Return the heuristic sample, recomputing at most once per cache window.
        Reads inside the window return the identical cached object.
        """
        now = time.monotonic() if now is None else float(now)
        with self._lock:
            if self._cached is not None and self._cached_at is not None and now - self._cached_at < self._cache_sec:
                return self._cached
            sample = self._compute(now)
            self._cached = sample
            self._cached_at = now
            return sample

    def _prune_clicks(self, now: float) -> None:
        while self._clicks and now - self._clicks[0] >= self._click_window_sec:
            self._clicks.popleft()

    def _compute(self, now: float) -> BiometricSample:
        if self._last_move_time is not None and now - self._last_move_time > DECAY_AFTER_SEC:
            self._velocity *= DECAY_FACTOR

        v = self._velocity
        if not math.isfinite(v):
            logger.debug("Non-finite pointer velocity; resetting")
            self._velocity = 0.0
        else:
            v = min(v, VELOCITY_CAP)

        self._prune_clicks(now)
        clicks = len(self._clicks)
        rage = (clicks - RAGE_CLICK_FREE) * RAGE_CLICK_PENALTY if clicks > RAGE_CLICK_FREE else 0.0

        frustration = (v - FRUSTRATION_VELOCITY_FLOOR) * FRUSTRATION_PER_VELOCITY + rage if v > FRUSTRATION_VELOCITY_FLOOR else 0.0
        joy = v * JOY_PER_VELOCITY if v > JOY_VELOCITY_FLOOR and clicks <= RAGE_CLICK_FREE else 0.0

        if self._context is GameContext.WRONG_ANSWER_STREAK:
            frustration = frustration * WRONG_STREAK_FRUSTRATION_GAIN
            joy = 0.0
        elif self._context is GameContext.CORRECT_ANSWER_STREAK:
            joy = joy * CORRECT_STREAK_JOY_GAIN
            frustration = 0.0
        elif self._context is GameContext.IDLE and not self._touch_capable:
            # Hover has no touch analog
            if self._last_move_time is not None and v < DWELL_MAX_VELOCITY:
                since = now - self._last_move_time
                if since < DWELL_WINDOW_SEC:
                    frustration = since / DWELL_UNIT_SEC

        raw = {
            "tension": v * PSEUDO_TENSION_PER_VELOCITY,
            "gaze_wander": v * PSEUDO_GAZE_PER_VELOCITY,
            "joy": joy,
            "frustration": frustration,
        }
        values = {}
        for name, value in raw.items():
            if math.isfinite(value):
                values[name] = clamp100(value)
            else:
                values[name] = self._sums[name] / self._samples if self._samples > 0 else 0.0
        for name, value in values.items():
            self._sums[name] += value
        self._samples += 1

        return BiometricSample(
            source=SampleSource.BEHAVIORAL,
            tension=values["tension"],
            gaze_wander=values["gaze_wander"],
            joy=values["joy"],
            frustration=values["frustration"],
            is_heuristic=True,
        )
