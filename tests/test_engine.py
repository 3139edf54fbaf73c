"""
Cognitive load engine tests.

Runs the full engine headless: synthetic camera frames, a scripted landmarker
and transcriber, a fake audio stream and a manual clock. The evaluation tick
interval is set to an hour so tests drive evaluate() themselves.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from types import SimpleNamespace

WALL_TIME = 1700000000.0


class _SequenceScorer:
    """Returns scripted scores in order, repeating the last one."""

    weights_source = "scripted"

    def __init__(self, scores):
        self.scores = list(scores)
        self.initialized = False

    def initialize(self):
        self.initialized = True

    def score(self, features):
        return self.scores.pop(0) if len(self.scores) > 1 else self.scores[0]


def _engine(scores=(50,), camera=True, landmarker=None, clock=None):
    from cognitive_load_engine import CognitiveLoadEngine
    from services.audio_context import SharedAudioContext
    from services.resource_arbiter import ResourceArbiter, ResourceKind
    from tests.fixtures.synthetic_faces import FakeStreamFactory, ManualClock, ScriptedLandmarker, ScriptedTranscriber
    streams = FakeStreamFactory()
    allowed = {ResourceKind.CAMERA: camera, ResourceKind.MICROPHONE: True, ResourceKind.ACCELERATOR: True}
    arbiter = ResourceArbiter(
        permission_policy=lambda kind: allowed[kind],
        audio_context_factory=lambda: SharedAudioContext(16000, 256, stream_factory=streams),
    )
    built = []

    def landmarker_factory():
        built.append(1)
        return landmarker if landmarker is not None else ScriptedLandmarker()

    engine = CognitiveLoadEngine(
        arbiter=arbiter,
        landmarker_factory=landmarker_factory,
        transcriber_factory=lambda: ScriptedTranscriber(),
        scorer=_SequenceScorer(scores),
        clock=clock or ManualClock(),
        wall_clock=lambda: WALL_TIME,
        evaluation_interval_sec=3600,
    )
    return engine, SimpleNamespace(allowed=allowed, streams=streams, built=built)


def _frames(count=2000):
    from tests.fixtures.synthetic_faces import ScriptedFrameSource
    return ScriptedFrameSource([33.0 * i for i in range(1, count + 1)])


class TestEvaluation(unittest.TestCase):
    """Test the per-tick pipeline and its callbacks."""

    def test_tick_classification_and_crisis_callbacks(self):
        """Classification changes and crisis fire on the right ticks; every tick is reported."""
        from utils.cognitive_state import CognitiveClassification as C
        engine, rig = _engine(scores=[50, 70, 70, 95, 30], camera=False)
        ticks, changes, crises = [], [], []
        engine.on_tick(ticks.append)
        engine.on_classification_changed(lambda new, old: changes.append((new, old)))
        engine.on_crisis(crises.append)
        try:
            engine.start(_frames(), enable_voice=False)
            for _ in range(5):
                engine.evaluate()
        finally:
            engine.close()
        self.assertEqual([t["score"] for t in ticks], [50, 70, 70, 95, 30])
        self.assertEqual(changes, [
            (C.APPROACHING_OVERLOAD, C.NORMAL),
            (C.OVERLOAD, C.APPROACHING_OVERLOAD),
            (C.NORMAL, C.OVERLOAD),
        ])
        self.assertEqual(len(crises), 1)
        self.assertEqual(crises[0]["score"], 95)
        self.assertEqual(crises[0]["classification"], "overload")

    def test_crisis_dismiss_and_rearm(self):
        """A dismissed crisis fires again only after the score drops below re-arm."""
        engine, rig = _engine(scores=[95, 96, 85, 70, 92], camera=False)
        crises = []
        engine.on_crisis(crises.append)
        try:
            engine.start(_frames(), enable_voice=False)
            engine.evaluate()
            engine.dismiss_crisis()
            engine.evaluate()
            engine.evaluate()
            engine.evaluate()
            engine.evaluate()
        finally:
            engine.close()
        self.assertEqual([c["score"] for c in crises], [95, 92])

    def test_state_and_payload(self):
        """evaluate() stores the state and reports heuristic mode when the camera is refused."""
        engine, rig = _engine(scores=[42], camera=False)
        ticks = []
        engine.on_tick(ticks.append)
        try:
            self.assertIsNone(engine.get_current_state())
            engine.start(_frames(), enable_voice=False)
            state = engine.evaluate()
        finally:
            engine.close()
        self.assertIs(engine.get_current_state(), state)
        self.assertEqual(state.score, 42)
        self.assertTrue(state.is_heuristic)
        self.assertEqual(state.timestamp, WALL_TIME)
        self.assertTrue(ticks[0]["isHeuristic"])
        self.assertEqual(ticks[0]["classification"], "normal")
        self.assertEqual(rig.built, [])

    def test_callback_errors_do_not_break_tick(self):
        """A failing host callback is logged and the tick still completes."""
        engine, rig = _engine(scores=[60], camera=False)
        seen = []

        def broken(payload):
            raise RuntimeError("host bug")

        engine.on_tick(broken)
        engine.on_tick(seen.append)
        try:
            engine.start(_frames(), enable_voice=False)
            engine.evaluate()
        finally:
            engine.close()
        self.assertEqual(len(seen), 1)

    def test_keystrokes_reach_features(self):
        """Host keystrokes and focus changes flow into the feature vector."""
        engine, rig = _engine(scores=[50], camera=False)
        try:
            engine.start(_frames(), enable_voice=False)
            now = engine._clock()
            for i, key in enumerate(("a", "b", "Backspace", "c")):
                engine.record_keystroke(key, now + i * 0.1)
            engine.record_focus_change(False)
            state = engine.evaluate(now + 1.0)
        finally:
            engine.close()
        self.assertEqual(state.features.keystrokes_per_minute, 4.0)
        self.assertAlmostEqual(state.features.error_rate, 0.25)
        self.assertEqual(state.features.context_switches, 1.0)

    def test_game_context_forwarding(self):
        """set_game_context accepts the string value and reaches the behavioral adapter."""
        from services.behavioral_adapter import GameContext
        engine, rig = _engine()
        engine.set_game_context("correct_answer_streak")
        self.assertIs(engine.behavioral.context, GameContext.CORRECT_ANSWER_STREAK)
        engine.on_pointer_move(10, 10, "touch", 1.0)
        self.assertTrue(engine.behavioral.touch_capable)


class TestVisionIntegration(unittest.TestCase):
    """Test vision samples, face presence and sustained distress through the engine."""

    def test_vision_metrics_in_payload(self):
        """Facial metrics from the landmarker appear in the tick payload."""
        from tests.fixtures.synthetic_faces import ScriptedLandmarker, make_face, wait_for
        from utils.biometric_sample import SampleSource
        landmarker = ScriptedLandmarker(default=make_face(0.1, mouthSmileLeft=1.0, mouthSmileRight=1.0))
        engine, rig = _engine(scores=[30], landmarker=landmarker)
        ticks = []
        engine.on_tick(ticks.append)
        try:
            engine.start(_frames(), enable_voice=False)
            self.assertTrue(wait_for(lambda: engine.board.latest(SampleSource.VISION) is not None))
            engine.evaluate()
        finally:
            engine.close()
        self.assertFalse(ticks[0]["isHeuristic"])
        self.assertEqual(ticks[0]["metrics"]["joy"], 90.0)
        self.assertEqual(ticks[0]["classification"], "normal")
        self.assertEqual(engine.arbiter.active_lease_count(), 0)

    def test_face_lost_and_recovered_forwarded(self):
        """Face presence events reach the engine callbacks."""
        from tests.fixtures.synthetic_faces import ManualClock, ScriptedLandmarker, make_face, wait_for
        clock = ManualClock()
        landmarker = ScriptedLandmarker()
        engine, rig = _engine(landmarker=landmarker, clock=clock)
        events = []
        engine.on_face_lost(lambda: events.append("lost"))
        engine.on_face_recovered(lambda: events.append("recovered"))
        try:
            engine.start(_frames(), enable_voice=False)
            self.assertTrue(wait_for(lambda: len(landmarker.calls) > 1))
            clock.advance(6.0)
            self.assertTrue(wait_for(lambda: events == ["lost"]))
            landmarker.default = make_face()
            self.assertTrue(wait_for(lambda: events == ["lost", "recovered"]))
        finally:
            engine.close()

    def test_sustained_distress_fires_from_vision(self):
        """Frustration held high across the hold window fires the distress callback once."""
        from tests.fixtures.synthetic_faces import ManualClock, ScriptedLandmarker, make_face, wait_for
        clock = ManualClock()
        furious = make_face(
            0.1, browDownLeft=1.0, browDownRight=1.0, jawOpen=1.0, mouthFrownLeft=1.0,
            mouthFrownRight=1.0, noseSneerLeft=1.0, noseSneerRight=1.0,
        )
        landmarker = ScriptedLandmarker(default=furious)
        engine, rig = _engine(landmarker=landmarker, clock=clock)
        fired = []
        engine.on_sustained_distress(fired.append)
        try:
            engine.start(_frames(), enable_voice=False)
            self.assertTrue(wait_for(lambda: len(landmarker.calls) > 1))
            self.assertEqual(fired, [])
            clock.advance(5.0)
            self.assertTrue(wait_for(lambda: fired == ["frustration"]))
            engine.dismiss_distress()
            self.assertFalse(engine.distress.active)
        finally:
            engine.close()


class TestLifecycle(unittest.TestCase):
    """Test start/stop and resource cleanup."""

    def test_start_twice_refused(self):
        """A running engine refuses a second start()."""
        engine, rig = _engine(camera=False)
        try:
            self.assertTrue(engine.start(_frames(), enable_voice=False))
            self.assertFalse(engine.start(_frames(), enable_voice=False))
            self.assertTrue(engine.scorer.initialized)
        finally:
            engine.close()

    def test_voice_lease_released_on_stop(self):
        """stop() releases every lease and suspends the shared audio stream."""
        from services.resource_arbiter import ResourceKind
        engine, rig = _engine(camera=False)
        try:
            engine.start(_frames(), enable_voice=True)
            self.assertTrue(engine.arbiter.is_held(ResourceKind.MICROPHONE))
            engine.stop()
            engine.stop()
            self.assertEqual(engine.arbiter.active_lease_count(), 0)
            self.assertTrue(rig.streams.streams[0].stopped >= 1)
            self.assertFalse(rig.streams.streams[0].closed)
        finally:
            engine.close()
        self.assertTrue(rig.streams.streams[0].closed)

    def test_abandoned_vision_stays_heuristic(self):
        """Once vision fell back to heuristics, a restart does not retry the camera."""
        from services.resource_arbiter import ResourceKind
        engine, rig = _engine(camera=False)
        try:
            engine.start(_frames(), enable_voice=False)
            self.assertTrue(engine.is_heuristic)
            engine.stop()
            rig.allowed[ResourceKind.CAMERA] = True
            source = _frames()
            engine.start(source, enable_voice=False)
            self.assertTrue(engine.is_heuristic)
            self.assertEqual(source.reads, 0)
            self.assertEqual(rig.built, [])
        finally:
            engine.close()

    def test_stop_clears_board(self):
        """Samples do not survive a stop."""
        engine, rig = _engine(camera=False)
        try:
            engine.start(_frames(), enable_voice=False)
            engine.evaluate()
            engine.stop()
            self.assertEqual(engine.board.snapshot(), {})
        finally:
            engine.close()


if __name__ == "__main__":
    unittest.main()
