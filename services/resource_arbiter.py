"""
Resource Arbiter.

Grants exclusive leases on scarce hardware/compute resources (camera,
microphone, accelerator) so competing adapters never contend for the same
device. acquire() never blocks or queues: contention is reported immediately
as BUSY and the caller decides whether to retry.

The arbiter also owns the single process-wide audio-processing context. Any
adapter that needs microphone audio must hold the MICROPHONE lease and ask
the arbiter for the context; creating a second context elsewhere is a bug
(platforms cap concurrent input streams).

Usage:
    arbiter = ResourceArbiter()
    status, lease = arbiter.acquire(ResourceKind.CAMERA, "vision")
    if status is AcquireStatus.GRANTED:
        with lease:
            ...  # lease released on every exit path
"""

import logging
import threading
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import config

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    """Scarce resources guarded by the arbiter."""
    CAMERA = "camera"
    MICROPHONE = "microphone"
    # One GPU context: Vision's on-device model and the behavioral fallback's
    # compute path both lease this kind, so they never run simultaneously.
    ACCELERATOR = "accelerator"


class AcquireStatus(Enum):
    GRANTED = "granted"
    BUSY = "busy"
    PERMISSION_DENIED = "permission_denied"


class ResourceError(RuntimeError):
    """Raised only for contract violations (e.g. audio context without a mic lease)."""


@dataclass(eq=False)
class ResourceLease:
    """An exclusive, explicitly released claim on one resource kind."""
    kind: ResourceKind
    holder: str
    active: bool = True
    _arbiter: Optional["ResourceArbiter"] = field(default=None, repr=False)

    def release(self) -> None:
        """Release this lease. Safe to call more than once."""
        if self._arbiter is not None:
            self._arbiter.release(self)
        else:
            self.active = False

    def __enter__(self) -> "ResourceLease":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def default_permission_policy(kind: ResourceKind) -> bool:
    """Permission policy from config (a disabled device == a refused prompt)."""
    if kind is ResourceKind.CAMERA:
        return config.CAMERA_ENABLED
    if kind is ResourceKind.MICROPHONE:
        return config.MICROPHONE_ENABLED
    if kind is ResourceKind.ACCELERATOR:
        return config.ACCELERATOR_ENABLED
    return False


def _default_audio_context_factory():
    # Deferred so importing the arbiter never loads PortAudio.
    from services.audio_context import SharedAudioContext
    return SharedAudioContext(
        sample_rate=config.AUDIO_SAMPLE_RATE,
        block_size=config.AUDIO_BLOCK_SIZE,
    )


class ResourceArbiter:
    """
    Thread-safe lease registry: at most one active lease per ResourceKind.
    """

    def __init__(
        self,
        permission_policy: Optional[Callable[[ResourceKind], bool]] = None,
        audio_context_factory: Optional[Callable[[], object]] = None,
    ):
        self._permission_policy = permission_policy or default_permission_policy
        self._audio_context_factory = audio_context_factory or _default_audio_context_factory
        self._active: Dict[ResourceKind, ResourceLease] = {}
        self._issued: "weakref.WeakSet[ResourceLease]" = weakref.WeakSet()
        self._audio_context = None
        self._lock = threading.Lock()

    def acquire(self, kind: ResourceKind, holder: str) -> Tuple[AcquireStatus, Optional[ResourceLease]]:
        """
        Try to take an exclusive lease on `kind` for `holder`.

        Returns:
            (GRANTED, lease) on success, (BUSY, None) when another lease of the
            same kind is active, (PERMISSION_DENIED, None) when the permission
            policy refuses the device.
        """
        try:
            allowed = bool(self._permission_policy(kind))
        except Exception as e:
            logger.warning("Permission check for %s failed: %s", kind.value, e)
            allowed = False
        if not allowed:
            logger.info("Permission denied for %s (holder=%s)", kind.value, holder)
            return AcquireStatus.PERMISSION_DENIED, None

        with self._lock:
            current = self._active.get(kind)
            if current is not None and current.active:
                logger.debug("%s busy: held by %s, requested by %s", kind.value, current.holder, holder)
                return AcquireStatus.BUSY, None
            lease = ResourceLease(kind=kind, holder=holder, _arbiter=self)
            self._active[kind] = lease
            self._issued.add(lease)
        return AcquireStatus.GRANTED, lease

    def release(self, lease: ResourceLease) -> None:
        """
        Release a lease. Idempotent for leases issued by this arbiter.

        Raises:
            ValueError: if the lease was never issued by this arbiter.
        """
        with self._lock:
            if lease not in self._issued or lease._arbiter is not self:
                raise ValueError(f"Lease for {lease.kind.value} was not issued by this arbiter")
            if not lease.active:
                return
            lease.active = False
            if self._active.get(lease.kind) is lease:
                del self._active[lease.kind]

    def is_held(self, kind: ResourceKind) -> bool:
        with self._lock:
            lease = self._active.get(kind)
            return lease is not None and lease.active

    def active_leases(self) -> List[ResourceLease]:
        with self._lock:
            return [lease for lease in self._active.values() if lease.active]

    def active_lease_count(self) -> int:
        return len(self.active_leases())

    # ------------------------------------------------------------------
    # Shared audio context
    # ------------------------------------------------------------------
    def audio_context(self, lease: ResourceLease):
        """
        Return the single shared audio context, creating it on first use and
        resuming it if suspended. The caller must hold the active MICROPHONE lease.
        """
        if lease.kind is not ResourceKind.MICROPHONE or not lease.active:
            raise ResourceError("An active microphone lease is required for the audio context")
        with self._lock:
            if self._active.get(ResourceKind.MICROPHONE) is not lease:
                raise ResourceError("Microphone lease does not belong to this arbiter")
            if self._audio_context is None:
                self._audio_context = self._audio_context_factory()
                logger.info("Shared audio context created")
            ctx = self._audio_context
        if ctx.is_suspended():
            ctx.resume()
        return ctx

    def suspend_audio_context(self) -> None:
        """Suspend (never close) the shared context so it can be reacquired cheaply."""
        with self._lock:
            ctx = self._audio_context
        if ctx is not None and not ctx.is_suspended():
            ctx.suspend()

    def has_audio_context(self) -> bool:
        with self._lock:
            return self._audio_context is not None

    def close(self) -> None:
        """Release every lease and close the audio context (process teardown)."""
        for lease in self.active_leases():
            self.release(lease)
        with self._lock:
            ctx = self._audio_context
            self._audio_context = None
        if ctx is not None:
            ctx.close()
