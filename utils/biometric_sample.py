"""
Biometric sample record shared by every adapter.

Each adapter publishes one BiometricSample per tick of its own clock. Samples
are never persisted: the sample board keeps the latest one per source and the
next sample from that source overwrites it.
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum


class SampleSource(Enum):
    """Which adapter produced a sample."""
    VISION = "vision"
    VOICE = "voice"
    BEHAVIORAL = "behavioral"


class SignalSource(Enum):
    """
    Where the facial metrics actually come from. Chosen once: VISION until the
    vision pipeline fails to initialize, then HEURISTIC for the rest of the session.
    """
    VISION = "vision"
    HEURISTIC = "heuristic"


METRIC_FIELDS = (
    "tension",
    "gaze_wander",
    "joy",
    "frustration",
    "confusion",
    "vocal_energy",
    "speech_rate",
)


def clamp100(value: float) -> float:
    """Clamp a value to the [0, 100] range."""
    return max(0.0, min(100.0, float(value)))


@dataclass(frozen=True)
class BiometricSample:
    """
    One adapter reading. Fields are 0-100 except speech_rate (words/min).
    Fields an adapter does not measure stay at 0.
    """
    source: SampleSource
    tension: float = 0.0
    gaze_wander: float = 0.0
    joy: float = 0.0
    frustration: float = 0.0
    confusion: float = 0.0
    vocal_energy: float = 0.0
    speech_rate: float = 0.0
    is_heuristic: bool = False
    timestamp: float = field(default_factory=time.time)

    def metrics(self) -> dict:
        """Return the metric fields only, as a plain dict."""
        d = asdict(self)
        return {k: d[k] for k in METRIC_FIELDS}
