"""
Helper utility functions.

This module contains reusable utility functions used throughout the engine.
"""

from typing import Dict, Any, Optional

import config
from utils.biometric_sample import METRIC_FIELDS
from utils.cognitive_state import CognitiveState

# snake_case metric field -> key in the external payload
_PAYLOAD_METRIC_KEYS = {
    "tension": "tension",
    "gaze_wander": "gazeWander",
    "joy": "joy",
    "frustration": "frustration",
    "confusion": "confusion",
    "vocal_energy": "vocalEnergy",
    "speech_rate": "speechRate",
}


def build_state_payload(state: CognitiveState, include_features: bool = False) -> Dict[str, Any]:
    """
    Build the per-tick result dictionary handed to external collaborators.

    Consumers that persist readings must watermark any payload where
    isHeuristic is True.

    Returns:
        dict: {score, classification, metrics, isHeuristic, timestamp}
              (+ features when include_features is True)
    """
    metrics = {
        _PAYLOAD_METRIC_KEYS[name]: round(float(state.metrics.get(name, 0.0)), 2)
        for name in METRIC_FIELDS
    }
    payload: Dict[str, Any] = {
        "score": int(state.score),
        "classification": state.classification.value,
        "metrics": metrics,
        "isHeuristic": bool(state.is_heuristic),
        "timestamp": state.timestamp,
    }
    if include_features and state.features is not None:
        payload["features"] = state.features.to_dict()
    return payload


def build_config_response(extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the configuration snapshot logged at engine start.

    Args:
        extra: runtime details to merge in (e.g. the chosen vision delegate)
    """
    response = config.get_engine_config()
    if extra:
        response.update(extra)
    return response
