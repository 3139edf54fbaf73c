"""
Intervention Triggers

Two independent hysteresis patterns that decide when to raise an external
override:

CrisisTrigger (session-wide, on the load score)
    Fires when the score rises above the fire threshold (default 90). The
    crisis stays active until dismissed. After a dismissal it is disarmed and
    cannot fire again until the score drops below the re-arm threshold
    (default 80); the next reading above the fire threshold then fires.

SustainedDistressTrigger (gameplay, on individual metrics)
    Fires when one watched metric (frustration or confusion) stays at or
    above the threshold (default 80) continuously for the hold time
    (default 5 s). Any reading below the threshold clears that metric's timer
    (no partial credit). Once fired it latches until dismissed; dismissal
    clears every timer so a fresh hold window can begin.
"""

import math
import threading
from typing import Dict, Iterable, Mapping, Optional

import config


class CrisisTrigger:
    """
    Usage:
        crisis = CrisisTrigger()
        if crisis.update(score):
            show_crisis_overlay()
        ...
        crisis.dismiss()
    """

    def __init__(self, fire_threshold: Optional[float] = None, rearm_threshold: Optional[float] = None):
        self.fire_threshold = float(config.CRISIS_THRESHOLD if fire_threshold is None else fire_threshold)
        self.rearm_threshold = float(config.CRISIS_REARM_THRESHOLD if rearm_threshold is None else rearm_threshold)
        if self.rearm_threshold > self.fire_threshold:
            raise ValueError("rearm_threshold must not exceed fire_threshold")
        self._active = False
        self._armed = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        """A fired crisis the user has not dismissed yet."""
        return self._active

    @property
    def armed(self) -> bool:
        return self._armed

    def update(self, score: float) -> bool:
        """Feed one score. Returns True only on the tick the crisis fires."""
        with self._lock:
            if not self._armed:
                if score < self.rearm_threshold:
                    self._armed = True
                return False
            if not self._active and score > self.fire_threshold:
                self._active = True
                return True
            return False

    def dismiss(self) -> None:
        """User dismissed the crisis: suppress until the score re-arms."""
        with self._lock:
            if self._active:
                self._active = False
                self._armed = False

    def reset(self) -> None:
        with self._lock:
            self._active = False
            self._armed = True


class SustainedDistressTrigger:
    """
    Usage:
        distress = SustainedDistressTrigger()
        metric = distress.update({"frustration": 85, "confusion": 10}, now)
        if metric:
            offer_break(metric)
    """

    def __init__(
        self,
        threshold: Optional[float] = None,
        hold_sec: Optional[float] = None,
        metrics: Iterable[str] = ("frustration", "confusion"),
    ):
        self.threshold = float(config.DISTRESS_THRESHOLD if threshold is None else threshold)
        self.hold_sec = float(config.DISTRESS_HOLD_SEC if hold_sec is None else hold_sec)
        self.metrics = tuple(metrics)
        self._above_since: Dict[str, Optional[float]] = {m: None for m in self.metrics}
        self._fired_metric: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._fired_metric is not None

    @property
    def fired_metric(self) -> Optional[str]:
        return self._fired_metric

    def update(self, values: Mapping[str, float], now: float) -> Optional[str]:
        """
        Feed the latest metric values at time `now` (seconds).

        Returns:
            The metric name on the tick the trigger fires, otherwise None.
        """
        with self._lock:
            if self._fired_metric is not None:
                return None
            for name in self.metrics:
                value = values.get(name)
                if value is None:
                    continue
                if not math.isfinite(value) or value < self.threshold:
                    self._above_since[name] = None
                    continue
                since = self._above_since[name]
                if since is None:
                    since = self._above_since[name] = now
                if now - since >= self.hold_sec:
                    self._fired_metric = name
                    return name
            return None

    def dismiss(self) -> None:
        with self._lock:
            self._fired_metric = None
            for name in self.metrics:
                self._above_since[name] = None

    reset = dismiss
