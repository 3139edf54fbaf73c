"""
In-memory board holding the latest BiometricSample per source.

Adapters publish from their own threads; the feature aggregator and the
intervention triggers read the latest value without waiting on any adapter.
Last value wins: a new sample from a source overwrites the previous one.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from utils.biometric_sample import BiometricSample, SampleSource

logger = logging.getLogger(__name__)

SampleListener = Callable[[BiometricSample], None]


class SampleBoard:
    """Thread-safe latest-sample store with publish listeners."""

    def __init__(self):
        self._latest: Dict[SampleSource, BiometricSample] = {}
        self._listeners: List[SampleListener] = []
        self._lock = threading.Lock()

    def publish(self, sample: BiometricSample) -> None:
        """
        Store a sample as the latest for its source, then notify listeners.
        Listener errors are logged and never reach the publishing adapter.
        """
        with self._lock:
            self._latest[sample.source] = sample
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(sample)
            except Exception as e:
                logger.warning("Sample listener failed: %s", e)

    def latest(self, source: SampleSource) -> Optional[BiometricSample]:
        with self._lock:
            return self._latest.get(source)

    def snapshot(self) -> Dict[SampleSource, BiometricSample]:
        """Copy of the latest sample per source (thread-safe)."""
        with self._lock:
            return dict(self._latest)

    def subscribe(self, listener: SampleListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: SampleListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def clear(self) -> None:
        """Drop stored samples (e.g. when the engine stops). Listeners stay registered."""
        with self._lock:
            self._latest.clear()
