"""
Per-session geometric baseline.

Accumulates the raw brow-distance signal over the first calibration frames.
The baseline is frozen once `max_frames` samples have been seen, so a user
who furrows their brow for a long stretch later in the session does not drag
the reference toward the furrowed position.
"""

import config


class CalibrationBaseline:
    """Running average of the first N geometric samples."""

    def __init__(self, max_frames: int = None):
        self.max_frames = int(max_frames if max_frames is not None else config.CALIBRATION_FRAMES)
        self.accumulated_value = 0.0
        self.frame_count = 0

    def add(self, value: float) -> float:
        """Fold one sample into the baseline (ignored once frozen). Returns the baseline."""
        if not self.frozen:
            self.accumulated_value += float(value)
            self.frame_count += 1
        return self.average

    @property
    def average(self) -> float:
        return self.accumulated_value / max(1, self.frame_count)

    @property
    def frozen(self) -> bool:
        return self.frame_count >= self.max_frames

    def reset(self) -> None:
        self.accumulated_value = 0.0
        self.frame_count = 0
