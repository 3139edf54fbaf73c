"""
Cognitive state classification.

Score bands (upper bound inclusive):
    HYPERFOCUS            score <= 25
    NORMAL                25 < score <= 65
    APPROACHING_OVERLOAD  65 < score <= 80
    OVERLOAD              score > 80
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import config
from utils.feature_vector import FeatureVector


class CognitiveClassification(Enum):
    """Cognitive load buckets, in increasing order of load."""
    HYPERFOCUS = "hyperfocus"
    NORMAL = "normal"
    APPROACHING_OVERLOAD = "approaching_overload"
    OVERLOAD = "overload"

    @classmethod
    def from_score(cls, score: float) -> 'CognitiveClassification':
        """
        Determine the classification from a score.

        Args:
            score: Cognitive load score (0-100)

        Returns:
            CognitiveClassification enum value
        """
        if score <= config.HYPERFOCUS_MAX_SCORE:
            return cls.HYPERFOCUS
        elif score <= config.NORMAL_MAX_SCORE:
            return cls.NORMAL
        elif score <= config.APPROACHING_OVERLOAD_MAX_SCORE:
            return cls.APPROACHING_OVERLOAD
        else:
            return cls.OVERLOAD


@dataclass
class CognitiveState:
    """Result of one evaluation tick."""
    score: int  # Cognitive load score (0-100)
    classification: CognitiveClassification
    is_heuristic: bool  # Facial metrics came from pointer heuristics, not the camera
    timestamp: float  # Unix timestamp of evaluation
    metrics: dict = field(default_factory=dict)  # Latest value of every biometric field
    features: Optional[FeatureVector] = None  # Raw features the score was computed from


class ClassificationTracker:
    """
    Edge-triggered classification tracking: update() reports True only when
    the classification differs from the previous one.
    """

    def __init__(self, initial: CognitiveClassification = CognitiveClassification.NORMAL):
        self._initial = initial
        self._current = initial
        self._lock = threading.Lock()

    @property
    def current(self) -> CognitiveClassification:
        return self._current

    def update(self, classification: CognitiveClassification) -> bool:
        with self._lock:
            if classification is self._current:
                return False
            self._current = classification
            return True

    def reset(self) -> None:
        with self._lock:
            self._current = self._initial
