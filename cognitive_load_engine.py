"""
Cognitive Load Engine.

Orchestrates real-time cognitive load estimation: vision (MediaPipe face
landmarker or pointer heuristics), voice (vocal energy + speech rate),
behavioral pointer heuristics and keyboard/focus counters are fused on a fixed
evaluation tick into a 0-100 score, a four-state classification and two
intervention triggers (crisis and sustained distress).

Pipeline per tick: collect features -> score -> classify -> crisis trigger
-> callbacks. The sustained-distress trigger runs on every vision sample
instead, so its 5 s hold is measured at frame resolution.

All hardware goes through one ResourceArbiter. Adapters run on their own
daemon threads and publish to the sample board; the tick never waits on them.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

import config
from services.behavioral_adapter import BehavioralHeuristicAdapter, GameContext
from services.feature_aggregator import FeatureAggregator
from services.resource_arbiter import ResourceArbiter
from services.sample_board import SampleBoard
from services.vision_adapter import VisionAdapter
from services.voice_adapter import VoiceAdapter
from utils.biometric_sample import BiometricSample, METRIC_FIELDS, SampleSource
from utils.cognitive_state import ClassificationTracker, CognitiveClassification, CognitiveState
from utils.helpers import build_config_response, build_state_payload
from utils.intervention_triggers import CrisisTrigger, SustainedDistressTrigger
from utils.load_scorer import LoadScorer

logger = logging.getLogger(__name__)

_FACIAL_FIELDS = ("tension", "gaze_wander", "joy", "frustration", "confusion")
_VOCAL_FIELDS = ("vocal_energy", "speech_rate")


class CognitiveLoadEngine:
    """
    Main engine class.

    Usage:
        engine = CognitiveLoadEngine()
        engine.on_tick(lambda payload: print(payload["score"], payload["classification"]))
        engine.on_crisis(lambda payload: show_overlay())
        engine.start()
        ...
        engine.record_keystroke("a")
        engine.on_pointer_move(320, 200)
        ...
        engine.stop()
    """

    def __init__(
        self,
        arbiter: Optional[ResourceArbiter] = None,
        landmarker_factory: Optional[Callable] = None,
        transcriber_factory: Optional[Callable] = None,
        scorer: Optional[LoadScorer] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        evaluation_interval_sec: Optional[float] = None,
    ):
        """
        Args:
            arbiter: shared ResourceArbiter (one per process); created if None
            landmarker_factory: builds the face landmarker (default: MediaPipe)
            transcriber_factory: builds the speech transcriber (default: Vosk)
            scorer: load scorer (default: weights file or seeded network)
            clock: monotonic seconds, used for all intervals
            wall_clock: Unix seconds, used for state timestamps
            evaluation_interval_sec: tick period (default config.EVALUATION_INTERVAL_SEC)
        """
        self.arbiter = arbiter or ResourceArbiter()
        self.board = SampleBoard()
        self.behavioral = BehavioralHeuristicAdapter()
        self.aggregator = FeatureAggregator(self.board, clock=clock)
        self.scorer = scorer or LoadScorer()
        self.voice = VoiceAdapter(self.arbiter, self.board, transcriber_factory=transcriber_factory, clock=clock)
        self.vision: Optional[VisionAdapter] = None

        self._landmarker_factory = landmarker_factory
        self._clock = clock
        self._wall_clock = wall_clock
        self._interval = float(
            config.EVALUATION_INTERVAL_SEC if evaluation_interval_sec is None else evaluation_interval_sec
        )

        self._tracker = ClassificationTracker()
        self.crisis = CrisisTrigger()
        self.distress = SustainedDistressTrigger()

        self._tick_callbacks: List[Callable[[dict], None]] = []
        self._face_lost_callbacks: List[Callable[[], None]] = []
        self._face_recovered_callbacks: List[Callable[[], None]] = []
        self._classification_callbacks: List[Callable[[CognitiveClassification, CognitiveClassification], None]] = []
        self._crisis_callbacks: List[Callable[[dict], None]] = []
        self._distress_callbacks: List[Callable[[str], None]] = []

        # Vision lost once stays lost for this engine instance
        self._vision_abandoned = False

        self.current_state: Optional[CognitiveState] = None
        self.lock = threading.Lock()
        self._tick_count = 0
        self._cancel = threading.Event()
        self._tick_thread: Optional[threading.Thread] = None
        self.is_running = False

    # ------------------------------------------------------------------
    # Callback registration
    # ------------------------------------------------------------------
    def on_tick(self, callback: Callable[[dict], None]) -> None:
        """callback(payload) after every evaluation; payload from build_state_payload."""
        self._tick_callbacks.append(callback)

    def on_face_lost(self, callback: Callable[[], None]) -> None:
        self._face_lost_callbacks.append(callback)

    def on_face_recovered(self, callback: Callable[[], None]) -> None:
        self._face_recovered_callbacks.append(callback)

    def on_classification_changed(
        self, callback: Callable[[CognitiveClassification, CognitiveClassification], None]
    ) -> None:
        """callback(new, previous), only when the classification changes."""
        self._classification_callbacks.append(callback)

    def on_crisis(self, callback: Callable[[dict], None]) -> None:
        """callback(payload) on the tick a crisis fires."""
        self._crisis_callbacks.append(callback)

    def on_sustained_distress(self, callback: Callable[[str], None]) -> None:
        """callback(metric_name) when frustration or confusion stays high long enough."""
        self._distress_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, video_source=None, enable_voice: bool = True) -> bool:
        """
        Start all adapters and the evaluation tick.

        Args:
            video_source: object exposing read_frame() -> (ok, frame, frame_time_ms);
                          the default webcam when None
            enable_voice: also start the microphone adapter

        Returns:
            True if the engine started, False if it was already running
        """
        with self.lock:
            if self.is_running:
                return False
            self.is_running = True

        self.scorer.initialize()
        self._tracker.reset()
        self.crisis.reset()
        self.distress.reset()
        self._tick_count = 0

        self.board.subscribe(self._on_sample)
        self.vision = VisionAdapter(
            self.arbiter,
            self.board,
            self.behavioral,
            landmarker_factory=self._landmarker_factory,
            clock=self._clock,
            heuristic_only=self._vision_abandoned,
        )
        self.vision.on_face_lost = self._handle_face_lost
        self.vision.on_face_recovered = self._handle_face_recovered
        self.vision.start(video_source)

        if enable_voice:
            self.voice.start()

        self._cancel.clear()
        self._tick_thread = threading.Thread(target=self._tick_loop, name="cognitive-tick", daemon=True)
        self._tick_thread.start()

        logger.info("Cognitive load engine started: %s", build_config_response({
            "scorerWeights": self.scorer.weights_source,
        }))
        return True

    def stop(self) -> None:
        """Stop the tick and every adapter, releasing all leases. Safe to call repeatedly."""
        with self.lock:
            was_running = self.is_running
            self.is_running = False
        self._cancel.set()
        thread, self._tick_thread = self._tick_thread, None
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=2.0)

        if self.vision is not None:
            if self.vision.is_heuristic:
                self._vision_abandoned = True
            self.vision.close()
        self.voice.stop()
        self.board.unsubscribe(self._on_sample)
        self.board.clear()
        if was_running:
            logger.info("Cognitive load engine stopped")

    def close(self) -> None:
        """stop() plus closing the shared audio context (process teardown)."""
        self.stop()
        self.arbiter.close()

    def get_current_state(self) -> Optional[CognitiveState]:
        """
        Get the latest evaluated state (thread-safe).

        Returns:
            CognitiveState if at least one tick ran, None otherwise
        """
        with self.lock:
            return self.current_state

    @property
    def is_heuristic(self) -> bool:
        if self.vision is not None:
            return self.vision.is_heuristic
        return self._vision_abandoned

    # ------------------------------------------------------------------
    # Host input forwarding
    # ------------------------------------------------------------------
    def record_keystroke(self, key: str, timestamp: Optional[float] = None) -> None:
        self.aggregator.record_keystroke(key, timestamp)

    def record_focus_change(self, focused: bool) -> None:
        self.aggregator.record_focus_change(focused)

    def on_pointer_move(self, x: float, y: float, pointer_type: str = "mouse", timestamp: Optional[float] = None) -> None:
        self.behavioral.on_pointer_move(x, y, pointer_type, timestamp)

    def on_touch_start(self, x: float, y: float, timestamp: Optional[float] = None) -> None:
        self.behavioral.on_touch_start(x, y, timestamp)

    def on_click(self, timestamp: Optional[float] = None) -> None:
        self.behavioral.on_click(timestamp)

    def set_game_context(self, context) -> None:
        """Accepts a GameContext or its string value (e.g. "wrong_answer_streak")."""
        self.behavioral.set_context(GameContext(context))

    def dismiss_crisis(self) -> None:
        self.crisis.dismiss()

    def dismiss_distress(self) -> None:
        self.distress.dismiss()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def _tick_loop(self) -> None:
        while not self._cancel.wait(self._interval):
            try:
                self.evaluate()
            except Exception as e:
                logger.exception("Error in evaluation tick: %s", e)

    def evaluate(self, now: Optional[float] = None) -> CognitiveState:
        """
        Run one evaluation tick: features -> score -> classification -> triggers.
        Called by the tick thread; callable directly (e.g. from tests or a host loop).
        """
        now = self._clock() if now is None else float(now)
        self.board.publish(self.behavioral.get_metrics(now))

        features = self.aggregator.collect(now)
        score = self.scorer.score(features)
        classification = CognitiveClassification.from_score(score)
        state = CognitiveState(
            score=score,
            classification=classification,
            is_heuristic=self.is_heuristic,
            timestamp=self._wall_clock(),
            metrics=self._current_metrics(),
            features=features,
        )
        with self.lock:
            self.current_state = state
        payload = build_state_payload(state)

        previous = self._tracker.current
        if self._tracker.update(classification):
            logger.info("Classification %s -> %s (score=%d)", previous.value, classification.value, score)
            self._emit(self._classification_callbacks, classification, previous)

        if self.crisis.update(score):
            logger.warning("Crisis trigger fired (score=%d)", score)
            self._emit(self._crisis_callbacks, payload)

        self._emit(self._tick_callbacks, payload)

        self._tick_count += 1
        if config.ENGINE_DIAGNOSTIC_LOGGING and self._tick_count % config.ENGINE_DIAGNOSTIC_LOG_INTERVAL == 0:
            logger.info(
                "[Engine diagnostic] tick=%d score=%d class=%s heuristic=%s features=%s",
                self._tick_count, score, classification.value, state.is_heuristic, features.to_dict(),
            )
        return state

    def _current_metrics(self) -> dict:
        metrics = {name: 0.0 for name in METRIC_FIELDS}
        vision = self.board.latest(SampleSource.VISION)
        voice = self.board.latest(SampleSource.VOICE)
        if vision is not None:
            for name in _FACIAL_FIELDS:
                metrics[name] = getattr(vision, name)
        if voice is not None:
            for name in _VOCAL_FIELDS:
                metrics[name] = getattr(voice, name)
        return metrics

    def _on_sample(self, sample: BiometricSample) -> None:
        if sample.source is not SampleSource.VISION:
            return
        metric = self.distress.update(sample.metrics(), self._clock())
        if metric:
            logger.warning("Sustained %s detected", metric)
            self._emit(self._distress_callbacks, metric)

    def _handle_face_lost(self) -> None:
        self._emit(self._face_lost_callbacks)

    def _handle_face_recovered(self) -> None:
        self._emit(self._face_recovered_callbacks)

    @staticmethod
    def _emit(callbacks: list, *args) -> None:
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception as e:
                logger.warning("Error in engine callback: %s", e)
