"""
=============================================================================
CONFIGURATION FOR THE COGNITIVE LOAD ENGINE (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds ALL configurable settings for the engine in one place. Other
modules read from it; nothing is hard-coded in the adapters. Values come from
the environment (e.g. your .env file, loaded by monitor.py, or system
variables) so you can tune thresholds per deployment without changing code.

MAIN GROUPS OF SETTINGS:
------------------------
  1. Devices         — Which hardware the engine may use (camera, mic, GPU).
  2. Vision          — FaceLandmarker model, delegate, calibration, face-lost timeout.
  3. Voice           — Sample rate, analysis window, Vosk transcription model.
  4. Behavioral      — Pointer heuristic cache window and click window.
  5. Aggregation     — Evaluation tick, pause threshold, rolling keystroke window.
  6. Scorer          — Pre-trained weights file or deterministic seed.
  7. Classification  — Score bands for the four cognitive states.
  8. Interventions   — Crisis and sustained-distress thresholds.
  9. Diagnostics     — Periodic tick logging for threshold tuning.

HOW VALUES ARE CHOSEN:
---------------------
  - Environment variables (e.g. EVALUATION_INTERVAL_SEC) override everything.
  - If an env var is not set, we use the default observed in the field.
  - Thresholds are tunable policy, not algorithmic constants.
=============================================================================
"""

import os
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _strip_quotes(s: str) -> str:
    if not s:
        return s
    s = s.strip()
    if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
        return s[1:-1].strip()
    return s


# ============================================================================
# DEVICES (permission policy for the Resource Arbiter)
# ============================================================================
# A disabled device behaves exactly like a user refusing the OS permission
# prompt: acquire() reports PERMISSION_DENIED and the adapter degrades.
# ----------------------------------------------------------------------------
CAMERA_ENABLED: bool = _env_bool("CAMERA_ENABLED", "true")
MICROPHONE_ENABLED: bool = _env_bool("MICROPHONE_ENABLED", "true")
ACCELERATOR_ENABLED: bool = _env_bool("ACCELERATOR_ENABLED", "true")

# Webcam index used when start() is called without an explicit video source.
CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))

# ============================================================================
# VISION (facial geometry + blendshapes)
# ============================================================================
# The MediaPipe Tasks face landmarker bundle. Download face_landmarker.task
# from the MediaPipe model zoo and point this at it. If it is missing or
# fails to load, vision switches to the pointer heuristic for the session.
# ----------------------------------------------------------------------------
FACE_LANDMARKER_MODEL_PATH: str = _strip_quotes(
    os.getenv("FACE_LANDMARKER_MODEL_PATH") or "models/face_landmarker.task"
)

#   "auto" — GPU on high-tier devices, CPU otherwise (see utils/detection_capability.py)
#   "gpu"  — Always request the GPU delegate
#   "cpu"  — Always run on CPU
VISION_DELEGATE: str = os.getenv("VISION_DELEGATE", "auto").strip().lower()

# Confidence floors for the landmarker (0.01-0.99).
MIN_FACE_CONFIDENCE: float = float(os.getenv("MIN_FACE_CONFIDENCE", "0.5"))
MIN_TRACKING_CONFIDENCE: float = float(os.getenv("MIN_TRACKING_CONFIDENCE", "0.5"))

# Number of face frames averaged into the brow-distance baseline. After this
# many frames the baseline is frozen for the session.
CALIBRATION_FRAMES: int = max(1, int(os.getenv("CALIBRATION_FRAMES", "30")))

# Continuous seconds without a detected face before FaceLost fires (once).
FACE_LOST_TIMEOUT_SEC: float = float(os.getenv("FACE_LOST_TIMEOUT_SEC", "5.0"))

# Cadence of pseudo-vision samples once the vision model has been abandoned.
HEURISTIC_FALLBACK_HZ: float = float(os.getenv("HEURISTIC_FALLBACK_HZ", "5"))

# Frame loop pacing (frames never processed faster than this).
TARGET_FPS_MAX: float = float(os.getenv("TARGET_FPS_MAX", "30"))

# ============================================================================
# VOICE (vocal energy + speech rate)
# ============================================================================
AUDIO_SAMPLE_RATE: int = int(os.getenv("AUDIO_SAMPLE_RATE", "16000"))
AUDIO_BLOCK_SIZE: int = int(os.getenv("AUDIO_BLOCK_SIZE", "4000"))

# RMS is computed over the most recent N samples of the waveform.
VOICE_ANALYSIS_WINDOW: int = max(16, int(os.getenv("VOICE_ANALYSIS_WINDOW", "256")))

# Vosk model directory for continuous transcription. Unset or missing means
# the voice adapter tracks vocal energy only.
VOSK_MODEL_PATH: Optional[str] = _strip_quotes(os.getenv("VOSK_MODEL_PATH") or "") or None

# Energy-only publishing rate when transcription is unavailable.
VOICE_ENERGY_ONLY_HZ: float = float(os.getenv("VOICE_ENERGY_ONLY_HZ", "1"))

# ============================================================================
# BEHAVIORAL HEURISTICS (pointer / touch)
# ============================================================================
BEHAVIOR_CACHE_SEC: float = float(os.getenv("BEHAVIOR_CACHE_SEC", "0.5"))
RAGE_CLICK_WINDOW_SEC: float = float(os.getenv("RAGE_CLICK_WINDOW_SEC", "5.0"))

# ============================================================================
# AGGREGATION (evaluation tick and keyboard/focus counters)
# ============================================================================
EVALUATION_INTERVAL_SEC: float = float(os.getenv("EVALUATION_INTERVAL_SEC", "2.0"))
PAUSE_THRESHOLD_SEC: float = float(os.getenv("PAUSE_THRESHOLD_SEC", "3.0"))
KEYSTROKE_WINDOW_SEC: float = float(os.getenv("KEYSTROKE_WINDOW_SEC", "60.0"))

# ============================================================================
# LOAD SCORER (fixed 6-16-8-1 network)
# ============================================================================
# When the .npz file exists it must hold W1,b1,W2,b2,W3,b3. Otherwise the
# network is initialized deterministically from LOAD_SCORER_SEED.
LOAD_SCORER_WEIGHTS_PATH: str = os.getenv("LOAD_SCORER_WEIGHTS_PATH", "weights/load_scorer.npz")
LOAD_SCORER_SEED: int = int(os.getenv("LOAD_SCORER_SEED", "1337"))

# ============================================================================
# CLASSIFICATION BANDS (upper bound of each band, inclusive)
# ============================================================================
# HYPERFOCUS <= 25 < NORMAL <= 65 < APPROACHING_OVERLOAD <= 80 < OVERLOAD
HYPERFOCUS_MAX_SCORE: float = float(os.getenv("HYPERFOCUS_MAX_SCORE", "25"))
NORMAL_MAX_SCORE: float = float(os.getenv("NORMAL_MAX_SCORE", "65"))
APPROACHING_OVERLOAD_MAX_SCORE: float = float(os.getenv("APPROACHING_OVERLOAD_MAX_SCORE", "80"))

# ============================================================================
# INTERVENTIONS (hysteresis)
# ============================================================================
CRISIS_THRESHOLD: float = float(os.getenv("CRISIS_THRESHOLD", "90"))
CRISIS_REARM_THRESHOLD: float = float(os.getenv("CRISIS_REARM_THRESHOLD", "80"))
DISTRESS_THRESHOLD: float = float(os.getenv("DISTRESS_THRESHOLD", "80"))
DISTRESS_HOLD_SEC: float = float(os.getenv("DISTRESS_HOLD_SEC", "5.0"))

# ============================================================================
# Engine diagnostic logging (off by default)
# ============================================================================
# When True, log the feature vector and score every N ticks to aid threshold
# tuning. Use ENGINE_DIAGNOSTIC_LOG_INTERVAL to throttle.
ENGINE_DIAGNOSTIC_LOGGING: bool = _env_bool("ENGINE_DIAGNOSTIC_LOGGING", "false")
ENGINE_DIAGNOSTIC_LOG_INTERVAL: int = max(1, int(os.getenv("ENGINE_DIAGNOSTIC_LOG_INTERVAL", "15")))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()


def warn_missing_config() -> None:
    """
    Print warnings when optional model files are missing. The engine still runs
    (it degrades), but operators should know why. Does not raise.
    """
    import sys
    missing = []
    if not os.path.isfile(FACE_LANDMARKER_MODEL_PATH):
        missing.append(f"FACE_LANDMARKER_MODEL_PATH ({FACE_LANDMARKER_MODEL_PATH}) - vision will use pointer heuristics")
    if not VOSK_MODEL_PATH or not os.path.isdir(VOSK_MODEL_PATH):
        missing.append("VOSK_MODEL_PATH - voice will track vocal energy only")
    if missing:
        print("Config warning: the following models are not available:", "; ".join(missing), file=sys.stderr)


def get_engine_config() -> dict:
    """Snapshot of the tunable policy values (for logging and diagnostics)."""
    return {
        "devices": {
            "camera": CAMERA_ENABLED,
            "microphone": MICROPHONE_ENABLED,
            "accelerator": ACCELERATOR_ENABLED,
        },
        "vision": {
            "modelPath": FACE_LANDMARKER_MODEL_PATH,
            "delegate": VISION_DELEGATE,
            "calibrationFrames": CALIBRATION_FRAMES,
            "faceLostTimeoutSec": FACE_LOST_TIMEOUT_SEC,
            "fallbackHz": HEURISTIC_FALLBACK_HZ,
        },
        "voice": {
            "sampleRate": AUDIO_SAMPLE_RATE,
            "analysisWindow": VOICE_ANALYSIS_WINDOW,
            "voskModelPath": VOSK_MODEL_PATH,
        },
        "aggregation": {
            "evaluationIntervalSec": EVALUATION_INTERVAL_SEC,
            "pauseThresholdSec": PAUSE_THRESHOLD_SEC,
            "keystrokeWindowSec": KEYSTROKE_WINDOW_SEC,
        },
        "classification": {
            "hyperfocusMax": HYPERFOCUS_MAX_SCORE,
            "normalMax": NORMAL_MAX_SCORE,
            "approachingOverloadMax": APPROACHING_OVERLOAD_MAX_SCORE,
        },
        "interventions": {
            "crisis": CRISIS_THRESHOLD,
            "crisisRearm": CRISIS_REARM_THRESHOLD,
            "distress": DISTRESS_THRESHOLD,
            "distressHoldSec": DISTRESS_HOLD_SEC,
        },
    }
