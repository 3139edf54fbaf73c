"""
Streaming speech transcription with Vosk.

Feeds float32 microphone blocks into a KaldiRecognizer and reports transcript
segments as they change:
- interim: the recognizer's current partial hypothesis (replaced as it grows)
- final: a confirmed utterance (the partial it replaces is discarded)

If no model is configured or it fails to load, load() raises
TranscriptionUnavailable and the voice adapter tracks vocal energy only.
"""

import json
import logging
import os
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Segment = Tuple[str, bool]  # (text, is_final)


class TranscriptionUnavailable(RuntimeError):
    """Continuous transcription cannot run (no model, or the model failed to load)."""


class VoskTranscriber:
    """
    Usage:
        transcriber = VoskTranscriber("models/vosk-model-small-en-us-0.15", 16000)
        transcriber.load()
        segment = transcriber.accept(block)   # None, (partial, False) or (text, True)
    """

    def __init__(self, model_path: Optional[str], sample_rate: int = 16000):
        self.model_path = model_path
        self.sample_rate = int(sample_rate)
        self._recognizer = None
        self._last_partial = ""

    @property
    def loaded(self) -> bool:
        return self._recognizer is not None

    def load(self) -> None:
        """
        Load the Vosk model and build a recognizer.

        Raises:
            TranscriptionUnavailable: no model path, missing directory, or load failure
        """
        if not self.model_path or not os.path.isdir(self.model_path):
            raise TranscriptionUnavailable(f"Vosk model not found: {self.model_path!r}")
        try:
            from vosk import KaldiRecognizer, Model, SetLogLevel

            SetLogLevel(-1)
            model = Model(self.model_path)
            self._recognizer = KaldiRecognizer(model, self.sample_rate)
        except Exception as e:
            raise TranscriptionUnavailable(f"Could not load Vosk model: {e}") from e
        logger.info("Vosk transcriber loaded from %s", self.model_path)

    def accept(self, block: np.ndarray) -> Optional[Segment]:
        """
        Feed one float32 block (-1..1). Returns a segment when the transcript
        changed, otherwise None.
        """
        if self._recognizer is None:
            return None
        audio_int16 = (np.clip(block, -1.0, 1.0) * 32767).astype(np.int16)
        if self._recognizer.AcceptWaveform(audio_int16.tobytes()):
            result = json.loads(self._recognizer.Result())
            self._last_partial = ""
            return result.get("text", "") or "", True
        partial = json.loads(self._recognizer.PartialResult()).get("partial", "") or ""
        if partial == self._last_partial:
            return None
        self._last_partial = partial
        return partial, False

    def close(self) -> None:
        self._recognizer = None
        self._last_partial = ""
