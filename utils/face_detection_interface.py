"""
Face Landmarker Interface Module

This module defines an abstract interface for face landmarker implementations,
allowing the vision adapter to work with different backends (MediaPipe Tasks
on GPU or CPU, test doubles) interchangeably.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict
import numpy as np
from dataclasses import dataclass, field


class ModelLoadError(RuntimeError):
    """The landmarker model could not be initialized (missing file, bad delegate, ...)."""


@dataclass
class FaceDetectionResult:
    """
    Standardized face landmarker result.

    This structure provides a common format regardless of the underlying backend.
    """
    landmarks: np.ndarray  # Facial landmarks (N, 3) in normalized [0, 1] image coordinates
    blendshapes: Dict[str, float] = field(default_factory=dict)  # category name -> activation (0-1)
    confidence: float = 1.0  # Detection confidence (0-1)


class FaceLandmarkerInterface(ABC):
    """
    Abstract interface for face landmarker implementations.

    All backends must implement this interface to work with the vision adapter.
    """

    @abstractmethod
    def detect_for_video(self, image: np.ndarray, timestamp_ms: int) -> Optional[FaceDetectionResult]:
        """
        Detect the primary face in a video frame.

        Args:
            image: BGR image array (OpenCV format)
            timestamp_ms: Monotonically increasing frame timestamp in milliseconds

        Returns:
            FaceDetectionResult for the first face, or None if no face was found
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """
        Get the name of this landmarker backend.

        Returns:
            String name (e.g., "mediapipe-gpu")
        """
        pass

    def close(self) -> None:
        """
        Release the inference context. Override if needed.

        Default implementation does nothing.
        """
        pass
