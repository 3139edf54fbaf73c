"""
Vision Adapter.

Pulls frames from a video source, runs the MediaPipe face landmarker and
publishes five facial metrics (tension, gaze_wander, joy, frustration,
confusion) to the sample board.

Pipeline: read frame -> skip unless the frame clock advanced -> detect face
-> calibrate brow baseline -> compute metrics -> publish.

Degradation: if the camera is refused or busy, the accelerator is
unavailable, or the landmarker model fails to load, the adapter switches to
SignalSource.HEURISTIC for the rest of its life. In that mode it publishes
pointer-velocity pseudo metrics from the behavioral adapter at a fixed rate
(default 5 Hz), taking the ACCELERATOR lease for each computation so it never
runs alongside an on-device model.

Face presence is edge-triggered: FaceLost fires once after the configured
timeout (default 5 s) of continuous no-detection, FaceRecovered fires once
when a face comes back.
"""

import dataclasses
import logging
import threading
import time
from typing import Callable, Optional

import numpy as np

import config
from services.behavioral_adapter import BehavioralHeuristicAdapter
from services.resource_arbiter import AcquireStatus, ResourceArbiter, ResourceKind, ResourceLease
from services.sample_board import SampleBoard
from utils.biometric_sample import BiometricSample, SampleSource, SignalSource
from utils.calibration import CalibrationBaseline
from utils.detection_capability import recommend_vision_delegate
from utils.emotion_metrics import brow_distance, compute_emotion_metrics
from utils.face_detection_interface import FaceLandmarkerInterface, ModelLoadError
from utils.mediapipe_detector import MediaPipeFaceLandmarker
from utils.video_source_handler import VideoSourceHandler, VideoSourceType

logger = logging.getLogger(__name__)

HOLDER = "vision"


class TransientSampleError(RuntimeError):
    """A single frame could not be processed; the loop skips it and continues."""


def default_landmarker_factory() -> FaceLandmarkerInterface:
    """
    Build the MediaPipe landmarker on the recommended delegate. A GPU delegate
    that fails to initialize is retried once on CPU before giving up.
    """
    delegate, reason = recommend_vision_delegate()
    logger.info("Vision delegate: %s (%s)", delegate, reason)
    kwargs = dict(
        min_detection_confidence=config.MIN_FACE_CONFIDENCE,
        min_tracking_confidence=config.MIN_TRACKING_CONFIDENCE,
    )
    try:
        return MediaPipeFaceLandmarker(config.FACE_LANDMARKER_MODEL_PATH, delegate=delegate, **kwargs)
    except ModelLoadError as e:
        if delegate != "gpu":
            raise
        logger.warning("GPU landmarker failed (%s); retrying on CPU", e)
        return MediaPipeFaceLandmarker(config.FACE_LANDMARKER_MODEL_PATH, delegate="cpu", **kwargs)


class VisionAdapter:
    """
    Face landmarker adapter with a permanent heuristic fallback.

    Usage:
        adapter = VisionAdapter(arbiter, board, behavioral)
        adapter.on_face_lost = lambda: print("face lost")
        adapter.start()
        ...
        adapter.close()
    """

    def __init__(
        self,
        arbiter: ResourceArbiter,
        board: SampleBoard,
        behavioral: BehavioralHeuristicAdapter,
        landmarker_factory: Optional[Callable[[], FaceLandmarkerInterface]] = None,
        calibration: Optional[CalibrationBaseline] = None,
        clock: Callable[[], float] = time.monotonic,
        face_lost_timeout_sec: Optional[float] = None,
        fallback_hz: Optional[float] = None,
        target_fps: Optional[float] = None,
        heuristic_only: bool = False,
    ):
        self._arbiter = arbiter
        self._board = board
        self._behavioral = behavioral
        self._landmarker_factory = landmarker_factory or default_landmarker_factory
        self._calibration = calibration or CalibrationBaseline()
        self._clock = clock
        self._face_lost_timeout = float(
            config.FACE_LOST_TIMEOUT_SEC if face_lost_timeout_sec is None else face_lost_timeout_sec
        )
        hz = float(config.HEURISTIC_FALLBACK_HZ if fallback_hz is None else fallback_hz)
        self._fallback_interval = 1.0 / max(0.1, hz)
        fps = float(config.TARGET_FPS_MAX if target_fps is None else target_fps)
        self._frame_interval = 1.0 / max(1.0, fps)

        self.on_face_lost: Optional[Callable[[], None]] = None
        self.on_face_recovered: Optional[Callable[[], None]] = None

        # An engine that already lost vision once restarts straight into heuristics
        self._signal_source = SignalSource.HEURISTIC if heuristic_only else SignalSource.VISION
        self._source = None
        self._owns_source = False
        self._landmarker: Optional[FaceLandmarkerInterface] = None
        self._camera_lease: Optional[ResourceLease] = None
        self._accelerator_lease: Optional[ResourceLease] = None

        self._last_frame_time_ms: Optional[float] = None
        self._no_face_since: Optional[float] = None
        self._face_lost = False
        self._frames_processed = 0

        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def signal_source(self) -> SignalSource:
        return self._signal_source

    @property
    def is_heuristic(self) -> bool:
        return self._signal_source is SignalSource.HEURISTIC

    @property
    def face_lost(self) -> bool:
        return self._face_lost

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def calibration(self) -> CalibrationBaseline:
        return self._calibration

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, video_source=None) -> bool:
        """
        Start capture and analysis on a background thread.

        Args:
            video_source: any object exposing read_frame() -> (ok, frame, frame_time_ms).
                          When None, the default webcam is opened.

        Returns:
            True if the adapter started (in vision or heuristic mode), False if
            it was already started or closed.
        """
        with self._lock:
            if self._started or self._closed:
                return False
            self._started = True

        if self.is_heuristic:
            logger.info("Vision adapter running on pointer heuristics")
        else:
            self._open_capture(video_source)

        if not self.is_heuristic:
            status, lease = self._arbiter.acquire(ResourceKind.ACCELERATOR, HOLDER)
            if status is AcquireStatus.GRANTED:
                self._accelerator_lease = lease
            else:
                self._switch_to_heuristic(f"accelerator {status.value}")

        self._thread = threading.Thread(target=self._run, name="vision-adapter", daemon=True)
        self._thread.start()
        logger.info("Vision adapter started (source=%s)", self._signal_source.value)
        return True

    def _open_capture(self, video_source) -> None:
        status, lease = self._arbiter.acquire(ResourceKind.CAMERA, HOLDER)
        if status is not AcquireStatus.GRANTED:
            self._switch_to_heuristic(f"camera {status.value}")
            return
        self._camera_lease = lease
        if video_source is not None:
            self._source = video_source
            return
        handler = VideoSourceHandler()
        if handler.initialize_source(VideoSourceType.WEBCAM, camera_index=config.CAMERA_INDEX):
            self._source = handler
            self._owns_source = True
        else:
            # An unopenable webcam is treated like a refused permission prompt
            self._switch_to_heuristic("webcam could not be opened")

    def close(self) -> None:
        """
        Stop capture, cancel a pending model load and release every lease.
        Idempotent; safe before start().
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._cancel.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=2.0)
        self._release_capture()
        self._close_landmarker()
        self._release_lease("_accelerator_lease")
        logger.info("Vision adapter closed")

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------
    def _run(self) -> None:
        if not self.is_heuristic:
            self._load_model()
        if self._cancel.is_set():
            return
        if self.is_heuristic:
            self._fallback_loop()
        else:
            self._frame_loop()

    def _load_model(self) -> None:
        try:
            landmarker = self._landmarker_factory()
        except Exception as e:
            # ModelLoadError or anything the backend raised while building its graph
            self._switch_to_heuristic(f"model load failed: {e}")
            return
        if self._cancel.is_set():
            # close() ran while the model was loading
            try:
                landmarker.close()
            except Exception as e:
                logger.debug("Closing late landmarker failed: %s", e)
            return
        self._landmarker = landmarker
        logger.info("Face landmarker ready: %s", landmarker.get_name())

    def _frame_loop(self) -> None:
        while not self._cancel.is_set():
            started = self._clock()
            try:
                ok, frame, frame_time_ms = self._source.read_frame()
            except Exception as e:
                logger.debug("Frame read failed: %s", e)
                ok, frame, frame_time_ms = False, None, None
            now = self._clock()
            if not ok or frame is None:
                self._update_presence(False, now)
            else:
                try:
                    self._process_frame(frame, frame_time_ms, now)
                except TransientSampleError as e:
                    logger.debug("Skipping frame: %s", e)
            elapsed = self._clock() - started
            self._cancel.wait(max(0.0, self._frame_interval - elapsed))

    def _fallback_loop(self) -> None:
        while not self._cancel.is_set():
            self._fallback_step(self._clock())
            self._cancel.wait(self._fallback_interval)

    # ------------------------------------------------------------------
    # Per-sample processing
    # ------------------------------------------------------------------
    def _process_frame(self, frame: np.ndarray, frame_time_ms: float, now: float) -> Optional[BiometricSample]:
        """
        Analyze one frame. Returns the published sample, or None when the frame
        was stale or had no face.

        Raises:
            TransientSampleError: detection failed on this frame
        """
        if self._landmarker is None:
            return None
        if self._last_frame_time_ms is not None and frame_time_ms <= self._last_frame_time_ms:
            return None
        self._last_frame_time_ms = frame_time_ms

        try:
            result = self._landmarker.detect_for_video(frame, int(frame_time_ms))
        except Exception as e:
            raise TransientSampleError(str(e)) from e

        if result is None:
            self._update_presence(False, now)
            return None
        self._update_presence(True, now)

        try:
            distance = brow_distance(result.landmarks)
        except (IndexError, TypeError, ValueError) as e:
            raise TransientSampleError(f"incomplete landmarks: {e}") from e
        baseline = self._calibration.add(distance)
        metrics = compute_emotion_metrics(result.blendshapes, baseline, distance)
        self._frames_processed += 1

        sample = BiometricSample(
            source=SampleSource.VISION,
            tension=metrics.tension,
            gaze_wander=metrics.gaze_wander,
            joy=metrics.joy,
            frustration=metrics.frustration,
            confusion=metrics.confusion,
            is_heuristic=False,
        )
        self._board.publish(sample)
        return sample

    def _fallback_step(self, now: float) -> Optional[BiometricSample]:
        """
        Publish one pseudo-vision sample from the behavioral adapter. Skipped
        while another holder has the accelerator.
        """
        status, lease = self._arbiter.acquire(ResourceKind.ACCELERATOR, f"{HOLDER}-fallback")
        if status is AcquireStatus.BUSY:
            logger.debug("Accelerator busy; skipping heuristic sample")
            return None
        try:
            pseudo = self._behavioral.get_metrics(now)
            sample = dataclasses.replace(pseudo, source=SampleSource.VISION, is_heuristic=True)
        finally:
            if lease is not None:
                lease.release()
        self._board.publish(sample)
        return sample

    def _update_presence(self, detected: bool, now: float) -> None:
        if detected:
            self._no_face_since = None
            if self._face_lost:
                self._face_lost = False
                logger.info("Face recovered")
                self._emit(self.on_face_recovered)
            return
        if self._no_face_since is None:
            self._no_face_since = now
        if not self._face_lost and now - self._no_face_since >= self._face_lost_timeout:
            self._face_lost = True
            logger.info("Face lost for %.1fs", now - self._no_face_since)
            self._emit(self.on_face_lost)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _switch_to_heuristic(self, reason: str) -> None:
        if self._signal_source is SignalSource.HEURISTIC:
            return
        logger.warning("Vision unavailable (%s); using pointer heuristics for this session", reason)
        self._signal_source = SignalSource.HEURISTIC
        self._release_capture()
        self._close_landmarker()
        self._release_lease("_accelerator_lease")

    def _release_capture(self) -> None:
        if self._owns_source and self._source is not None:
            self._source.release()
        self._source = None
        self._owns_source = False
        self._release_lease("_camera_lease")

    def _close_landmarker(self) -> None:
        landmarker, self._landmarker = self._landmarker, None
        if landmarker is not None:
            landmarker.close()

    def _release_lease(self, attr: str) -> None:
        lease = getattr(self, attr)
        if lease is not None:
            lease.release()
            setattr(self, attr, None)

    @staticmethod
    def _emit(callback: Optional[Callable[[], None]]) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception as e:
            logger.warning("Face presence callback failed: %s", e)
