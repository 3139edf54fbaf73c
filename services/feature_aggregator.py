"""
Feature Aggregator.

Collects keyboard and focus behavior between evaluation ticks and combines it
with the latest vision/voice samples into the 6-feature vector consumed by the
load scorer (see utils/feature_vector.py).

Keystrokes per minute come from a rolling 60 s timestamp window. Pauses,
context switches, keystroke and backspace totals are burst counters: read and
reset to zero on every collect().
"""

import threading
import time
from collections import deque
from typing import Optional

import config
from services.sample_board import SampleBoard
from utils.biometric_sample import SampleSource
from utils.feature_vector import FeatureVector

ERROR_KEYS = frozenset({"backspace", "delete"})


class FeatureAggregator:
    """
    Thread-safe keyboard/focus counters plus last-value sample reads.

    Usage:
        aggregator = FeatureAggregator(board)
        aggregator.record_keystroke("a")
        aggregator.record_focus_change(False)
        features = aggregator.collect()
    """

    def __init__(
        self,
        board: SampleBoard,
        clock=time.monotonic,
        pause_threshold_sec: Optional[float] = None,
        window_sec: Optional[float] = None,
    ):
        self._board = board
        self._clock = clock
        self._pause_threshold = float(config.PAUSE_THRESHOLD_SEC if pause_threshold_sec is None else pause_threshold_sec)
        self._window_sec = float(config.KEYSTROKE_WINDOW_SEC if window_sec is None else window_sec)
        self._lock = threading.Lock()

        self._keystroke_times: deque = deque()
        self._last_keystroke = clock()
        self._focused = True

        self._total_keystrokes = 0
        self._backspaces = 0
        self._pauses = 0
        self._context_switches = 0

    def record_keystroke(self, key: str, timestamp: Optional[float] = None) -> None:
        """Count one key press; a gap longer than the pause threshold counts as a pause."""
        now = self._clock() if timestamp is None else float(timestamp)
        with self._lock:
            if now - self._last_keystroke > self._pause_threshold:
                self._pauses += 1
            if (key or "").lower() in ERROR_KEYS:
                self._backspaces += 1
            self._total_keystrokes += 1
            self._keystroke_times.append(now)
            self._last_keystroke = now

    def record_focus_change(self, focused: bool) -> None:
        """Count a context switch on each focused -> unfocused transition."""
        with self._lock:
            if self._focused and not focused:
                self._context_switches += 1
            self._focused = bool(focused)

    def collect(self, now: Optional[float] = None) -> FeatureVector:
        """
        Build this tick's feature vector and reset the burst counters.
        Never blocks on an adapter: sample reads are last-value lookups.
        """
        now = self._clock() if now is None else float(now)
        with self._lock:
            while self._keystroke_times and now - self._keystroke_times[0] > self._window_sec:
                self._keystroke_times.popleft()
            kpm = len(self._keystroke_times)
            error_rate = self._backspaces / self._total_keystrokes if self._total_keystrokes > 0 else 0.0
            pauses = self._pauses
            switches = self._context_switches
            self._pauses = 0
            self._context_switches = 0
            self._total_keystrokes = 0
            self._backspaces = 0

        vision = self._board.latest(SampleSource.VISION)
        voice = self._board.latest(SampleSource.VOICE)
        return FeatureVector(
            keystrokes_per_minute=float(kpm),
            error_rate=float(error_rate),
            pause_frequency=float(pauses),
            context_switches=float(switches),
            facial_tension=vision.tension if vision is not None else 0.0,
            vocal_energy=voice.vocal_energy if voice is not None else 0.0,
        )
