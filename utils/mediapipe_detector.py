"""
MediaPipe Face Landmarker Implementation

This module provides a MediaPipe Tasks-based implementation of the
FaceLandmarkerInterface. Runs the FaceLandmarker in VIDEO mode with blendshape
output enabled, on the GPU delegate when available.

Initialization problems (missing model bundle, unsupported delegate) are raised
as ModelLoadError so the vision adapter can switch to heuristics permanently
instead of retrying every frame.
"""

import logging
import os
from typing import Optional

import cv2
import numpy as np

from utils.face_detection_interface import FaceLandmarkerInterface, FaceDetectionResult, ModelLoadError

logger = logging.getLogger(__name__)


class MediaPipeFaceLandmarker(FaceLandmarkerInterface):
    """
    MediaPipe FaceLandmarker (Tasks API) returning landmarks and 52 blendshapes.
    """

    def __init__(
        self,
        model_path: str,
        delegate: str = "cpu",
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        """
        Initialize the landmarker.

        Args:
            model_path: Path to face_landmarker.task
            delegate: "gpu" or "cpu"
            min_detection_confidence: Minimum confidence for face detection (0-1)
            min_tracking_confidence: Minimum confidence for face tracking (0-1)

        Raises:
            ModelLoadError: if the model cannot be created
        """
        if not model_path or not os.path.isfile(model_path):
            raise ModelLoadError(f"Face landmarker model not found: {model_path!r}")

        self._delegate = (delegate or "cpu").lower()
        det_conf = max(0.01, min(0.99, float(min_detection_confidence)))
        track_conf = max(0.01, min(0.99, float(min_tracking_confidence)))

        try:
            import mediapipe as mp

            self._mp = mp
            base_options = mp.tasks.BaseOptions(
                model_asset_path=model_path,
                delegate=(
                    mp.tasks.BaseOptions.Delegate.GPU
                    if self._delegate == "gpu"
                    else mp.tasks.BaseOptions.Delegate.CPU
                ),
            )
            options = mp.tasks.vision.FaceLandmarkerOptions(
                base_options=base_options,
                running_mode=mp.tasks.vision.RunningMode.VIDEO,
                num_faces=1,
                min_face_detection_confidence=det_conf,
                min_face_presence_confidence=det_conf,
                min_tracking_confidence=track_conf,
                output_face_blendshapes=True,
                output_facial_transformation_matrixes=False,
            )
            self._landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
        except Exception as e:
            raise ModelLoadError(f"FaceLandmarker init failed ({self._delegate}): {e}") from e

        self._last_ts = -1

    def detect_for_video(self, image: np.ndarray, timestamp_ms: int) -> Optional[FaceDetectionResult]:
        """
        Detect the primary face. MediaPipe requires strictly increasing timestamps,
        so a non-advancing timestamp is bumped by one millisecond.
        """
        if image is None or image.size == 0:
            return None

        ts = int(timestamp_ms)
        if ts <= self._last_ts:
            ts = self._last_ts + 1
        self._last_ts = ts

        rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb_image)
        results = self._landmarker.detect_for_video(mp_image, ts)

        if not results.face_landmarks:
            return None

        landmarks = np.array(
            [[lm.x, lm.y, lm.z] for lm in results.face_landmarks[0]],
            dtype=np.float32,
        )
        blendshapes = {}
        if results.face_blendshapes:
            for category in results.face_blendshapes[0]:
                blendshapes[category.category_name] = float(category.score)

        return FaceDetectionResult(landmarks=landmarks, blendshapes=blendshapes)

    def get_name(self) -> str:
        return f"mediapipe-{self._delegate}"

    def close(self) -> None:
        """Release the MediaPipe graph (and its GPU context)."""
        landmarker = getattr(self, "_landmarker", None)
        if landmarker is not None:
            try:
                landmarker.close()
            except Exception as e:
                logger.debug("FaceLandmarker close failed: %s", e)
            self._landmarker = None
