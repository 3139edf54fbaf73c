"""
Intervention trigger tests.

Crisis hysteresis (fire above 90, re-arm below 80 after dismissal) and the
sustained-distress hold window (>= 80 for 5 s continuous).
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


class TestCrisisTrigger(unittest.TestCase):
    """Test crisis firing, dismissal and re-arming."""

    def _trigger(self):
        from utils.intervention_triggers import CrisisTrigger
        return CrisisTrigger(fire_threshold=90, rearm_threshold=80)

    def test_fires_above_threshold(self):
        """Fires on the first score above 90, not at exactly 90."""
        crisis = self._trigger()
        self.assertFalse(crisis.update(90))
        self.assertTrue(crisis.update(91))
        self.assertTrue(crisis.active)

    def test_fires_once_while_active(self):
        """An undismissed crisis does not fire again."""
        crisis = self._trigger()
        self.assertTrue(crisis.update(95))
        self.assertFalse(crisis.update(97))
        self.assertFalse(crisis.update(50))
        self.assertFalse(crisis.update(99))
        self.assertTrue(crisis.active)

    def test_dismissed_crisis_needs_rearm(self):
        """After dismissal, high scores stay silent until the score drops below 80."""
        crisis = self._trigger()
        crisis.update(95)
        crisis.dismiss()
        self.assertFalse(crisis.active)
        self.assertFalse(crisis.armed)
        self.assertFalse(crisis.update(96))
        self.assertFalse(crisis.update(85))
        self.assertFalse(crisis.update(80))
        self.assertFalse(crisis.armed)
        self.assertFalse(crisis.update(79))
        self.assertTrue(crisis.armed)
        self.assertTrue(crisis.update(92))

    def test_rearm_then_mid_score_does_not_fire(self):
        """Sequence 95, dismiss, 65, 85: re-armed by 65, and 85 is below the fire threshold."""
        crisis = self._trigger()
        self.assertTrue(crisis.update(95))
        crisis.dismiss()
        self.assertFalse(crisis.update(65))
        self.assertTrue(crisis.armed)
        self.assertFalse(crisis.update(85))
        self.assertTrue(crisis.update(91))

    def test_dismiss_without_crisis_is_noop(self):
        """Dismissing when nothing fired leaves the trigger armed."""
        crisis = self._trigger()
        crisis.dismiss()
        self.assertTrue(crisis.armed)
        self.assertTrue(crisis.update(95))

    def test_invalid_thresholds(self):
        """A re-arm threshold above the fire threshold is rejected."""
        from utils.intervention_triggers import CrisisTrigger
        with self.assertRaises(ValueError):
            CrisisTrigger(fire_threshold=80, rearm_threshold=90)


class TestSustainedDistressTrigger(unittest.TestCase):
    """Test the distress hold window."""

    def _trigger(self, hold=5.0):
        from utils.intervention_triggers import SustainedDistressTrigger
        return SustainedDistressTrigger(threshold=80, hold_sec=hold)

    def test_fires_after_hold(self):
        """Frustration held at >= 80 for 5 s fires once with the metric name."""
        distress = self._trigger()
        self.assertIsNone(distress.update({"frustration": 85, "confusion": 0}, 0.0))
        self.assertIsNone(distress.update({"frustration": 80, "confusion": 0}, 4.9))
        self.assertEqual(distress.update({"frustration": 90, "confusion": 0}, 5.0), "frustration")
        self.assertTrue(distress.active)
        self.assertEqual(distress.fired_metric, "frustration")
        self.assertIsNone(distress.update({"frustration": 90, "confusion": 0}, 6.0))

    def test_exact_hold_boundary(self):
        """80 held for 4.999 s then 79 does not fire; 81 held for 5.0 s fires once."""
        distress = self._trigger()
        self.assertIsNone(distress.update({"frustration": 80}, 0.0))
        self.assertIsNone(distress.update({"frustration": 80}, 4.999))
        self.assertIsNone(distress.update({"frustration": 79}, 4.999))
        self.assertFalse(distress.active)

        distress = self._trigger()
        self.assertIsNone(distress.update({"frustration": 81}, 10.0))
        self.assertEqual(distress.update({"frustration": 81}, 15.0), "frustration")
        self.assertIsNone(distress.update({"frustration": 81}, 16.0))
        self.assertIsNone(distress.update({"frustration": 81}, 30.0))

    def test_dip_resets_timer(self):
        """A single reading below threshold restarts the hold window."""
        distress = self._trigger()
        distress.update({"frustration": 85}, 0.0)
        distress.update({"frustration": 79.9}, 3.0)
        self.assertIsNone(distress.update({"frustration": 85}, 4.0))
        self.assertIsNone(distress.update({"frustration": 85}, 8.9))
        self.assertEqual(distress.update({"frustration": 85}, 9.0), "frustration")

    def test_metrics_tracked_independently(self):
        """Confusion can fire even while frustration keeps resetting."""
        distress = self._trigger()
        for t, frustration in ((0.0, 90), (2.0, 10), (4.0, 90)):
            self.assertIsNone(distress.update({"frustration": frustration, "confusion": 95}, t))
        self.assertEqual(distress.update({"frustration": 90, "confusion": 95}, 5.0), "confusion")

    def test_non_finite_resets(self):
        """NaN readings count as below threshold."""
        distress = self._trigger()
        distress.update({"frustration": 90}, 0.0)
        distress.update({"frustration": float("nan")}, 2.0)
        self.assertIsNone(distress.update({"frustration": 90}, 5.0))

    def test_dismiss_starts_fresh_window(self):
        """After dismissal a full new hold is required."""
        distress = self._trigger()
        distress.update({"frustration": 90}, 0.0)
        self.assertEqual(distress.update({"frustration": 90}, 5.0), "frustration")
        distress.dismiss()
        self.assertFalse(distress.active)
        self.assertIsNone(distress.update({"frustration": 90}, 6.0))
        self.assertIsNone(distress.update({"frustration": 90}, 10.9))
        self.assertEqual(distress.update({"frustration": 90}, 11.0), "frustration")

    def test_unwatched_metrics_ignored(self):
        """Metrics other than frustration and confusion never fire."""
        distress = self._trigger(hold=0.0)
        self.assertIsNone(distress.update({"tension": 100, "joy": 100}, 0.0))

    def test_zero_hold_fires_immediately(self):
        """With no hold time the first qualifying reading fires."""
        distress = self._trigger(hold=0.0)
        self.assertEqual(distress.update({"confusion": 80}, 0.0), "confusion")


if __name__ == "__main__":
    unittest.main()
