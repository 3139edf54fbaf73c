"""
Shared audio-processing context.

One microphone input stream per process. Consumers (the voice adapter, and any
future audio feature) register a block callback; the stream fans each block
out to every consumer. The context is suspended rather than closed between
consumers so reacquiring it does not reopen the device.

Only the ResourceArbiter constructs this class (see
services/resource_arbiter.py); adapters receive it from arbiter.audio_context().
"""

import logging
import threading
from typing import Callable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

BlockConsumer = Callable[[np.ndarray], None]


def _open_input_stream(sample_rate: int, block_size: int, callback):
    import sounddevice as sd
    return sd.InputStream(
        samplerate=sample_rate,
        channels=1,
        dtype="float32",
        blocksize=block_size,
        callback=callback,
    )


class SharedAudioContext:
    """
    Lazily opened sounddevice input stream with suspend/resume semantics.

    States: suspended (initial, stream not running) -> running -> suspended ...
    -> closed. A closed context cannot be resumed.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        block_size: int = 4000,
        stream_factory: Optional[Callable] = None,
    ):
        self.sample_rate = int(sample_rate)
        self.block_size = int(block_size)
        self._stream_factory = stream_factory or _open_input_stream
        self._stream = None
        self._suspended = True
        self._closed = False
        self._consumers: List[BlockConsumer] = []
        self._lock = threading.Lock()

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.warning("Audio stream warning: %s", status)
        block = np.asarray(indata, dtype=np.float32).reshape(-1).copy()
        self.dispatch(block)

    def dispatch(self, block: np.ndarray) -> None:
        """Fan one audio block out to every registered consumer."""
        with self._lock:
            consumers = list(self._consumers)
        for consumer in consumers:
            try:
                consumer(block)
            except Exception as e:
                logger.warning("Audio consumer failed: %s", e)

    def add_consumer(self, consumer: BlockConsumer) -> None:
        with self._lock:
            if consumer not in self._consumers:
                self._consumers.append(consumer)

    def remove_consumer(self, consumer: BlockConsumer) -> None:
        with self._lock:
            if consumer in self._consumers:
                self._consumers.remove(consumer)

    def resume(self) -> None:
        """Open the stream on first use, then start it."""
        if self._closed:
            raise RuntimeError("Audio context is closed")
        if self._stream is None:
            self._stream = self._stream_factory(self.sample_rate, self.block_size, self._callback)
        self._stream.start()
        self._suspended = False

    def suspend(self) -> None:
        """Stop delivering blocks but keep the device open."""
        if self._stream is not None and not self._suspended:
            self._stream.stop()
        self._suspended = True

    def is_suspended(self) -> bool:
        return self._suspended

    def close(self) -> None:
        if self._closed:
            return
        self.suspend()
        if self._stream is not None:
            try:
                self._stream.close()
            except Exception as e:
                logger.warning("Closing audio stream failed: %s", e)
            self._stream = None
        with self._lock:
            self._consumers.clear()
        self._closed = True
