"""
Utilities package for the Cognitive Load Engine.

This package contains the pure building blocks of the engine: video source
handling, the face landmarker interface and its MediaPipe backend, facial
metric formulas, calibration, the feature vector, the load scorer,
classification and the intervention triggers.
"""

from .video_source_handler import VideoSourceHandler, VideoSourceType
from .face_detection_interface import FaceLandmarkerInterface, FaceDetectionResult, ModelLoadError
from .mediapipe_detector import MediaPipeFaceLandmarker
from .biometric_sample import BiometricSample, SampleSource, SignalSource
from .calibration import CalibrationBaseline
from .feature_vector import FeatureVector
from .load_scorer import LoadScorer
from .cognitive_state import CognitiveClassification, CognitiveState
from .intervention_triggers import CrisisTrigger, SustainedDistressTrigger

__all__ = [
    'VideoSourceHandler',
    'VideoSourceType',
    'FaceLandmarkerInterface',
    'FaceDetectionResult',
    'ModelLoadError',
    'MediaPipeFaceLandmarker',
    'BiometricSample',
    'SampleSource',
    'SignalSource',
    'CalibrationBaseline',
    'FeatureVector',
    'LoadScorer',
    'CognitiveClassification',
    'CognitiveState',
    'CrisisTrigger',
    'SustainedDistressTrigger',
]
