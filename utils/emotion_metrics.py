"""
Emotion Metrics Module

Turns one frame of MediaPipe face landmarks + blendshape activations into five
composite metrics (0-100):

- tension: brow-distance shrinkage relative to the calibrated baseline
- gaze_wander: lateral gaze activation
- joy: smile + cheek raise
- frustration: brow lowering, jaw drop, frown and sneer
- confusion: asymmetric brow raise, squint, pucker and upper-lip shrug

Blendshape names follow the MediaPipe FaceLandmarker 52-category output.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

import numpy as np

from utils.biometric_sample import clamp100

# Inner-eyebrow landmarks in the 468/478-point face mesh
LEFT_BROW_INNER = 107
RIGHT_BROW_INNER = 336

# Raw (baseline - distance) / baseline is tiny; scale it into the 0-100 band.
TENSION_SCALE = 1000.0

JOY_WEIGHTS = {
    "mouthSmileLeft": 0.45,
    "mouthSmileRight": 0.45,
    "cheekSquintLeft": 0.05,
    "cheekSquintRight": 0.05,
}

FRUSTRATION_WEIGHTS = {
    "browDownLeft": 0.25,
    "browDownRight": 0.25,
    "jawOpen": 0.15,
    "mouthFrownLeft": 0.10,
    "mouthFrownRight": 0.10,
    "noseSneerLeft": 0.075,
    "noseSneerRight": 0.075,
}

CONFUSION_WEIGHTS = {
    "browInnerUp": 0.20,
    "eyeSquintLeft": 0.15,
    "eyeSquintRight": 0.15,
    "mouthPucker": 0.10,
    "mouthShrugUpper": 0.10,
}
# Weight on |browInnerUp - browOuterUpLeft| (one-sided brow raise)
CONFUSION_ASYMMETRY_WEIGHT = 0.30

GAZE_KEYS = ("eyeLookOutLeft", "eyeLookInLeft")


@dataclass
class EmotionMetrics:
    """Per-frame facial metrics, each 0-100."""
    tension: float = 0.0
    gaze_wander: float = 0.0
    joy: float = 0.0
    frustration: float = 0.0
    confusion: float = 0.0


def _get(blendshapes: Mapping[str, float], name: str) -> float:
    v = blendshapes.get(name, 0.0)
    return float(v) if v is not None and np.isfinite(v) else 0.0


def _weighted(blendshapes: Mapping[str, float], weights: Mapping[str, float]) -> float:
    return sum(_get(blendshapes, k) * w for k, w in weights.items())


def brow_distance(landmarks: np.ndarray) -> float:
    """Horizontal distance between the inner eyebrow landmarks (normalized coords)."""
    return float(abs(landmarks[LEFT_BROW_INNER, 0] - landmarks[RIGHT_BROW_INNER, 0]))


def compute_tension(baseline: float, current_distance: float) -> float:
    """A brow narrower than baseline means a furrowed (tense) brow."""
    if baseline <= 0 or not np.isfinite(baseline) or not np.isfinite(current_distance):
        return 0.0
    delta = max(0.0, (baseline - current_distance) / baseline)
    return clamp100(delta * TENSION_SCALE)


def compute_gaze_wander(blendshapes: Mapping[str, float]) -> float:
    return clamp100(sum(_get(blendshapes, k) for k in GAZE_KEYS) / len(GAZE_KEYS) * 100.0)


def compute_joy(blendshapes: Mapping[str, float]) -> float:
    return clamp100(_weighted(blendshapes, JOY_WEIGHTS) * 100.0)


def compute_frustration(blendshapes: Mapping[str, float]) -> float:
    return clamp100(_weighted(blendshapes, FRUSTRATION_WEIGHTS) * 100.0)


def compute_confusion(blendshapes: Mapping[str, float]) -> float:
    asymmetry = abs(_get(blendshapes, "browInnerUp") - _get(blendshapes, "browOuterUpLeft"))
    raw = CONFUSION_ASYMMETRY_WEIGHT * asymmetry + _weighted(blendshapes, CONFUSION_WEIGHTS)
    return clamp100(raw * 100.0)


def compute_emotion_metrics(
    blendshapes: Mapping[str, float],
    baseline: float,
    current_distance: Optional[float],
) -> EmotionMetrics:
    """
    Compute all five metrics for one frame.

    Args:
        blendshapes: category name -> activation (0-1)
        baseline: calibrated brow distance (0 before any calibration)
        current_distance: this frame's brow distance, or None if landmarks missing
    """
    tension = compute_tension(baseline, current_distance) if current_distance is not None else 0.0
    return EmotionMetrics(
        tension=tension,
        gaze_wander=compute_gaze_wander(blendshapes),
        joy=compute_joy(blendshapes),
        frustration=compute_frustration(blendshapes),
        confusion=compute_confusion(blendshapes),
    )
