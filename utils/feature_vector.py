"""
Per-tick feature vector fed to the load scorer.

    [keystrokes_per_minute, error_rate, pause_frequency, context_switches,
     facial_tension, vocal_energy]
"""

from dataclasses import dataclass, astuple

import numpy as np

# Normalization divisors, same order as the FeatureVector fields
FEATURE_DIVISORS = (150.0, 1.0, 10.0, 5.0, 100.0, 100.0)


@dataclass(frozen=True)
class FeatureVector:
    """Raw per-tick features. Immutable once collected."""
    keystrokes_per_minute: float = 0.0
    error_rate: float = 0.0
    pause_frequency: float = 0.0
    context_switches: float = 0.0
    facial_tension: float = 0.0
    vocal_energy: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array(astuple(self), dtype=np.float64)

    def normalized(self) -> np.ndarray:
        """Each feature divided by its documented scale and clamped to [0, 1]."""
        raw = np.nan_to_num(self.as_array(), nan=0.0)
        return np.clip(raw / np.array(FEATURE_DIVISORS), 0.0, 1.0)

    def to_dict(self) -> dict:
        return {
            "keystrokesPerMinute": self.keystrokes_per_minute,
            "errorRate": self.error_rate,
            "pauseFrequency": self.pause_frequency,
            "contextSwitches": self.context_switches,
            "facialTension": self.facial_tension,
            "vocalEnergy": self.vocal_energy,
        }
