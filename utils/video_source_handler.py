"""
Video Source Handler Module

This module provides a unified, pull-based interface for reading frames from:
- Webcam (default camera)
- Local video files
- Video streams (RTSP, HTTP streams, etc.)

Every read also reports the frame clock (milliseconds) so consumers can tell
a fresh frame from one they have already processed.
"""

import logging
import sys
import time
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class VideoSourceType(Enum):
    """Enumeration of supported video source types."""
    WEBCAM = "webcam"
    FILE = "file"
    STREAM = "stream"


class VideoSourceHandler:
    """
    Handler for managing video sources of different types.

    Usage:
        handler = VideoSourceHandler()
        handler.initialize_source(VideoSourceType.WEBCAM)

        while True:
            ret, frame, frame_time_ms = handler.read_frame()
            if not ret:
                break
            # Process frame
    """

    def __init__(self):
        """Initialize the video source handler."""
        self.cap: Optional[cv2.VideoCapture] = None
        self.source_type: Optional[VideoSourceType] = None
        self.source_path: Optional[str] = None
        self._last_clock_ms: float = -1.0
        self._frames_read = 0
        self._reports_position = False

    def initialize_source(
        self,
        source_type: VideoSourceType,
        source_path: Optional[str] = None,
        camera_index: int = 0,
        lightweight: bool = False,
    ) -> bool:
        """
        Initialize a video source.

        Args:
            source_type: Type of video source (WEBCAM, FILE, STREAM)
            source_path: Path to video file or stream URL (required for FILE/STREAM)
            camera_index: Webcam index to try first
            lightweight: If True, use lower webcam resolution (640x360) for faster processing

        Returns:
            True if the source opened, False otherwise (treat as permission denied)
        """
        self.release()
        self.source_type = source_type
        self.source_path = source_path

        try:
            if source_type == VideoSourceType.WEBCAM:
                apis = [cv2.CAP_DSHOW, cv2.CAP_MSMF, cv2.CAP_ANY] if sys.platform == "win32" else [cv2.CAP_ANY]
                for api in apis:
                    cap = cv2.VideoCapture(camera_index, api)
                    if cap.isOpened():
                        self.cap = cap
                        break
                    cap.release()
                if self.cap is not None:
                    w, h = (640, 360) if lightweight else (1280, 720)
                    self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
                    self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
                    self.cap.set(cv2.CAP_PROP_FPS, 30)
                    self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

            elif source_type in (VideoSourceType.FILE, VideoSourceType.STREAM):
                if not source_path:
                    raise ValueError(f"source_path is required for {source_type.value} source type")
                self.cap = cv2.VideoCapture(source_path)
                if source_type == VideoSourceType.STREAM:
                    self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

            else:
                raise ValueError(f"Unsupported source type: {source_type}")

            if self.cap is None or not self.cap.isOpened():
                self.release()
                return False
            return True

        except Exception as e:
            logger.warning("Error initializing video source: %s", e)
            self.release()
            return False

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray], float]:
        """
        Read a frame from the video source.

        Returns:
            Tuple of (success, frame, frame_time_ms):
            - success: True if a frame was read
            - frame: BGR image array if successful, None otherwise
            - frame_time_ms: the source's frame clock. Files and streams report
              their position (0 for the first frame); webcams, and backends that
              never report a position, use the capture time
        """
        if not self.cap or not self.cap.isOpened():
            return False, None, self._last_clock_ms

        ret, frame = self.cap.read()
        if not ret or frame is None:
            return False, None, self._last_clock_ms

        clock_ms = self._frame_clock()
        self._frames_read += 1
        self._last_clock_ms = clock_ms
        return True, frame, clock_ms

    def _frame_clock(self) -> float:
        """One clock per source: file position for FILE/STREAM, capture time for WEBCAM."""
        if self.source_type == VideoSourceType.WEBCAM:
            return time.monotonic() * 1000.0
        pos_ms = float(self.cap.get(cv2.CAP_PROP_POS_MSEC) or 0.0)
        if pos_ms > 0:
            self._reports_position = True
            return pos_ms
        if self._reports_position or self._frames_read == 0:
            return max(pos_ms, 0.0)
        # backend never reported a position after the first frame
        return time.monotonic() * 1000.0

    def get_properties(self) -> dict:
        """
        Get properties of the current video source.

        Returns:
            Dictionary with width, height, fps and frame_count (-1 for live sources)
        """
        if not self.cap or not self.cap.isOpened():
            return {}
        return {
            'width': int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            'height': int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            'fps': self.cap.get(cv2.CAP_PROP_FPS),
            'frame_count': int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT)),
        }

    def release(self) -> None:
        """Release the current video source and stop capture. Safe to call repeatedly."""
        if self.cap:
            self.cap.release()
            self.cap = None
        self.source_type = None
        self.source_path = None
        self._last_clock_ms = -1.0
        self._frames_read = 0
        self._reports_position = False

    def __del__(self):
        """Cleanup on deletion."""
        self.release()
