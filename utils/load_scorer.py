"""
Load Scorer

Fixed 6 -> 16 -> 8 -> 1 network (relu, relu, sigmoid) mapping the normalized
feature vector to a 0-100 cognitive load score. Pure numpy; no training.

Weights come from LOAD_SCORER_WEIGHTS_PATH (.npz with W1, b1, W2, b2, W3, b3)
or, when that file is missing or malformed, are generated deterministically
(Glorot-uniform, zero biases) from LOAD_SCORER_SEED so every run of the same
configuration scores identically.

.npz format:
  W1: (6, 16)  b1: (16,)
  W2: (16, 8)  b2: (8,)
  W3: (8, 1)   b3: (1,)
"""

import logging
import os
from typing import Dict, Optional, Sequence, Union

import numpy as np

import config
from utils.feature_vector import FeatureVector

logger = logging.getLogger(__name__)

LAYER_SIZES = (6, 16, 8, 1)
NEUTRAL_SCORE = 50

WEIGHT_SHAPES: Dict[str, tuple] = {
    "W1": (6, 16), "b1": (16,),
    "W2": (16, 8), "b2": (8,),
    "W3": (8, 1), "b3": (1,),
}


def _relu(x: np.ndarray) -> np.ndarray:
    return np.maximum(x, 0.0)


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def glorot_weights(seed: int) -> Dict[str, np.ndarray]:
    """Deterministic Glorot-uniform weights with zero biases."""
    rng = np.random.default_rng(seed)
    weights: Dict[str, np.ndarray] = {}
    for i, (fan_in, fan_out) in enumerate(zip(LAYER_SIZES[:-1], LAYER_SIZES[1:]), start=1):
        limit = np.sqrt(6.0 / (fan_in + fan_out))
        weights[f"W{i}"] = rng.uniform(-limit, limit, size=(fan_in, fan_out))
        weights[f"b{i}"] = np.zeros(fan_out)
    return weights


def _validate(weights: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
    out = {}
    for name, shape in WEIGHT_SHAPES.items():
        if name not in weights:
            raise ValueError(f"missing weight array {name}")
        arr = np.asarray(weights[name], dtype=np.float64)
        if arr.shape != shape:
            raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
        if not np.all(np.isfinite(arr)):
            raise ValueError(f"{name} contains non-finite values")
        out[name] = arr
    return out


class LoadScorer:
    """
    Usage:
        scorer = LoadScorer()
        scorer.initialize()
        score = scorer.score(features)   # int 0-100
    """

    def __init__(self, weights_path: Optional[str] = None, seed: Optional[int] = None):
        self.weights_path = config.LOAD_SCORER_WEIGHTS_PATH if weights_path is None else weights_path
        self.seed = config.LOAD_SCORER_SEED if seed is None else int(seed)
        self._weights: Optional[Dict[str, np.ndarray]] = None
        self.weights_source: Optional[str] = None

    @property
    def initialized(self) -> bool:
        return self._weights is not None

    def initialize(self) -> None:
        """Load weights from file, else generate them from the seed. Idempotent."""
        if self._weights is not None:
            return
        path = self.weights_path
        if path and os.path.isfile(path):
            try:
                with np.load(path) as data:
                    self._weights = _validate({k: data[k] for k in data.files})
                self.weights_source = path
                logger.info("Load scorer weights loaded from %s", path)
                return
            except Exception as e:
                logger.warning("Ignoring load scorer weights at %s: %s", path, e)
        self._weights = glorot_weights(self.seed)
        self.weights_source = f"seed:{self.seed}"
        logger.info("Load scorer initialized from seed %d", self.seed)

    def set_weights(self, weights: Dict[str, np.ndarray]) -> None:
        """Replace the weights (all six arrays). Raises ValueError on bad shapes."""
        self._weights = _validate(weights)
        self.weights_source = "custom"

    def save_weights(self, path: str) -> None:
        if self._weights is None:
            raise RuntimeError("LoadScorer is not initialized")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        np.savez(path, **self._weights)

    def score(self, features: Union[FeatureVector, Sequence[float]]) -> int:
        """
        Score one feature vector (raw FeatureVector or 6 raw values).
        Returns 50 if the scorer has not been initialized.
        """
        if self._weights is None:
            logger.debug("Load scorer not initialized; returning neutral score")
            return NEUTRAL_SCORE
        if not isinstance(features, FeatureVector):
            values = [float(v) for v in features]
            if len(values) != LAYER_SIZES[0]:
                raise ValueError(f"expected {LAYER_SIZES[0]} features, got {len(values)}")
            features = FeatureVector(*values)
        w = self._weights
        x = features.normalized()
        h1 = _relu(x @ w["W1"] + w["b1"])
        h2 = _relu(h1 @ w["W2"] + w["b2"])
        out = float(_sigmoid(h2 @ w["W3"] + w["b3"])[0])
        return int(max(0, min(100, round(out * 100))))
