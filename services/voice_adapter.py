"""
Voice Adapter.

Measures vocal energy (RMS of the latest analysis window, x500, capped at 100)
and speech rate (words per minute from streaming transcription) from the
microphone, and publishes them to the sample board.

The microphone is reached only through the ResourceArbiter: start() takes the
MICROPHONE lease and asks the arbiter for the shared audio context; stop()
releases the lease and suspends (never closes) that context so another
feature can resume it without reopening the device.

Audio blocks arrive on the PortAudio callback thread and are handed to a
worker thread through a bounded queue; transcription never runs inside the
callback.
"""

import logging
import queue
import threading
import time
from collections import deque
from typing import Callable, Optional

import numpy as np

import config
from services.resource_arbiter import AcquireStatus, ResourceArbiter, ResourceKind, ResourceLease
from services.sample_board import SampleBoard
from services.transcriber import TranscriptionUnavailable, VoskTranscriber
from utils.biometric_sample import BiometricSample, SampleSource

logger = logging.getLogger(__name__)

HOLDER = "voice"
ENERGY_SCALE = 500.0
# Blocks buffered between the audio callback and the worker; oldest dropped when full
BLOCK_QUEUE_SIZE = 32


def compute_vocal_energy(window: np.ndarray) -> float:
    """RMS of the waveform window scaled to 0-100."""
    if window is None or len(window) == 0:
        return 0.0
    samples = np.asarray(window, dtype=np.float64)
    rms = float(np.sqrt(np.mean(samples * samples)))
    if not np.isfinite(rms):
        return 0.0
    return min(100.0, rms * ENERGY_SCALE)


def count_words(text: str) -> int:
    return len([w for w in (text or "").split() if w])


class SpeechRateCounter:
    """
    Words-per-minute from interim and final transcript segments.

    A final segment adds to the confirmed count and clears the in-flight
    interim count, so an utterance is never counted twice.
    """

    def __init__(self, start_time: float):
        self.start_time = start_time
        self.final_words = 0
        self.interim_words = 0

    def add_segment(self, text: str, is_final: bool) -> None:
        if is_final:
            self.final_words += count_words(text)
            self.interim_words = 0
        else:
            self.interim_words = count_words(text)

    def words_per_minute(self, now: float) -> float:
        elapsed_minutes = (now - self.start_time) / 60.0
        if elapsed_minutes <= 0:
            return 0.0
        return (self.final_words + self.interim_words) / elapsed_minutes

    def reset(self, start_time: float) -> None:
        self.start_time = start_time
        self.final_words = 0
        self.interim_words = 0


def default_transcriber_factory() -> VoskTranscriber:
    return VoskTranscriber(config.VOSK_MODEL_PATH, config.AUDIO_SAMPLE_RATE)


class VoiceAdapter:
    """
    Microphone adapter publishing vocal_energy and speech_rate samples.

    Usage:
        voice = VoiceAdapter(arbiter, board)
        if voice.start():
            ...
        voice.stop()
    """

    def __init__(
        self,
        arbiter: ResourceArbiter,
        board: SampleBoard,
        transcriber_factory: Optional[Callable[[], VoskTranscriber]] = None,
        clock: Callable[[], float] = time.monotonic,
        analysis_window: Optional[int] = None,
        energy_only_hz: Optional[float] = None,
    ):
        self._arbiter = arbiter
        self._board = board
        self._transcriber_factory = transcriber_factory or default_transcriber_factory
        self._clock = clock
        window = int(config.VOICE_ANALYSIS_WINDOW if analysis_window is None else analysis_window)
        self._window: deque = deque(maxlen=max(1, window))
        hz = float(config.VOICE_ENERGY_ONLY_HZ if energy_only_hz is None else energy_only_hz)
        self._energy_only_interval = 1.0 / max(0.1, hz)

        self._counter = SpeechRateCounter(clock())
        self._transcriber: Optional[VoskTranscriber] = None
        self._lease: Optional[ResourceLease] = None
        self._context = None
        self._blocks: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=BLOCK_QUEUE_SIZE)
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._last_publish: Optional[float] = None

    @property
    def active(self) -> bool:
        return self._lease is not None and self._lease.active

    @property
    def transcription_available(self) -> bool:
        return self._transcriber is not None

    @property
    def speech_rate_counter(self) -> SpeechRateCounter:
        return self._counter

    def start(self) -> bool:
        """
        Acquire the microphone and begin analysis.

        Returns:
            True if the adapter is running, False if the microphone was refused,
            busy, or could not be opened (the adapter then stays inactive).
        """
        with self._lock:
            if self.active:
                return True
            status, lease = self._arbiter.acquire(ResourceKind.MICROPHONE, HOLDER)
            if status is not AcquireStatus.GRANTED:
                logger.warning("Microphone %s; voice metrics disabled", status.value)
                return False
            try:
                context = self._arbiter.audio_context(lease)
            except Exception as e:
                logger.warning("Could not open the microphone stream: %s", e)
                lease.release()
                return False
            self._lease = lease
            self._context = context

            self._transcriber = self._load_transcriber()
            self._counter.reset(self._clock())
            self._window.clear()
            self._last_publish = None
            self._drain_queue()

            self._cancel.clear()
            context.add_consumer(self._on_block)
            self._thread = threading.Thread(target=self._run, name="voice-adapter", daemon=True)
            self._thread.start()
        mode = "transcription" if self._transcriber is not None else "energy-only"
        logger.info("Voice adapter started (%s)", mode)
        return True

    def stop(self) -> None:
        """Release the microphone and suspend the shared context. Idempotent."""
        with self._lock:
            self._cancel.set()
            thread, self._thread = self._thread, None
            if thread is not None and thread is not threading.current_thread() and thread.is_alive():
                thread.join(timeout=2.0)
            if self._context is not None:
                self._context.remove_consumer(self._on_block)
                self._context = None
            if self._lease is not None:
                self._arbiter.suspend_audio_context()
                self._lease.release()
                self._lease = None
                logger.info("Voice adapter stopped")
            if self._transcriber is not None:
                self._transcriber.close()
                self._transcriber = None

    # ------------------------------------------------------------------
    # Audio path
    # ------------------------------------------------------------------
    def _load_transcriber(self) -> Optional[VoskTranscriber]:
        try:
            transcriber = self._transcriber_factory()
            transcriber.load()
            return transcriber
        except TranscriptionUnavailable as e:
            logger.warning("%s. Tracking vocal energy only.", e)
        except Exception as e:
            logger.warning("Transcriber failed to start (%s). Tracking vocal energy only.", e)
        return None

    def _on_block(self, block: np.ndarray) -> None:
        # Runs on the audio callback thread: enqueue only
        try:
            self._blocks.put_nowait(block)
        except queue.Full:
            try:
                self._blocks.get_nowait()
            except queue.Empty:
                pass
            try:
                self._blocks.put_nowait(block)
            except queue.Full:
                logger.debug("Voice worker behind; dropping audio block")

    def _drain_queue(self) -> None:
        while True:
            try:
                self._blocks.get_nowait()
            except queue.Empty:
                return

    def _run(self) -> None:
        while not self._cancel.is_set():
            try:
                block = self._blocks.get(timeout=0.1)
            except queue.Empty:
                block = None
            now = self._clock()
            if block is not None:
                self._ingest(block, now)
            if self._transcriber is None:
                self._publish_energy_only(now)

    def _ingest(self, block: np.ndarray, now: float) -> Optional[BiometricSample]:
        """
        Add one block to the analysis window; with transcription, publish a
        sample whenever the transcript changes.
        """
        self._window.extend(np.asarray(block, dtype=np.float32).reshape(-1))
        if self._transcriber is None:
            return None
        try:
            segment = self._transcriber.accept(block)
        except Exception as e:
            logger.debug("Transcription skipped a block: %s", e)
            return None
        if segment is None:
            return None
        text, is_final = segment
        self._counter.add_segment(text, is_final)
        return self._publish(now)

    def _publish_energy_only(self, now: float) -> Optional[BiometricSample]:
        if self._last_publish is not None and now - self._last_publish < self._energy_only_interval:
            return None
        return self._publish(now, speech_rate=0.0)

    def _publish(self, now: float, speech_rate: Optional[float] = None) -> BiometricSample:
        if speech_rate is None:
            speech_rate = self._counter.words_per_minute(now)
        sample = BiometricSample(
            source=SampleSource.VOICE,
            vocal_energy=compute_vocal_energy(np.fromiter(self._window, dtype=np.float32)),
            speech_rate=max(0.0, speech_rate),
        )
        self._last_publish = now
        self._board.publish(sample)
        return sample
