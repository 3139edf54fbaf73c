"""
Resource arbiter tests.

Tests exclusive leases, permission refusal, idempotent release and the single
shared audio context.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

import numpy as np


def _arbiter(policy=None, stream_factory=None):
    from services.audio_context import SharedAudioContext
    from services.resource_arbiter import ResourceArbiter
    from tests.fixtures.synthetic_faces import FakeStreamFactory
    factory = stream_factory or FakeStreamFactory()
    arbiter = ResourceArbiter(
        permission_policy=policy or (lambda kind: True),
        audio_context_factory=lambda: SharedAudioContext(16000, 256, stream_factory=factory),
    )
    return arbiter, factory


class TestLeases(unittest.TestCase):
    """Test acquire/release semantics."""

    def test_second_acquire_is_busy(self):
        """A second acquire of the same kind without release returns BUSY."""
        from services.resource_arbiter import AcquireStatus, ResourceKind
        arbiter, _ = _arbiter()
        status, lease = arbiter.acquire(ResourceKind.CAMERA, "a")
        self.assertIs(status, AcquireStatus.GRANTED)
        self.assertTrue(lease.active)
        status2, lease2 = arbiter.acquire(ResourceKind.CAMERA, "b")
        self.assertIs(status2, AcquireStatus.BUSY)
        self.assertIsNone(lease2)

    def test_acquire_after_release_succeeds(self):
        """acquire after release is granted again."""
        from services.resource_arbiter import AcquireStatus, ResourceKind
        arbiter, _ = _arbiter()
        _, lease = arbiter.acquire(ResourceKind.MICROPHONE, "a")
        lease.release()
        self.assertFalse(lease.active)
        status, lease2 = arbiter.acquire(ResourceKind.MICROPHONE, "b")
        self.assertIs(status, AcquireStatus.GRANTED)
        self.assertEqual(lease2.holder, "b")

    def test_kinds_are_independent(self):
        """Holding the camera does not block the accelerator."""
        from services.resource_arbiter import AcquireStatus, ResourceKind
        arbiter, _ = _arbiter()
        arbiter.acquire(ResourceKind.CAMERA, "vision")
        status, _ = arbiter.acquire(ResourceKind.ACCELERATOR, "vision")
        self.assertIs(status, AcquireStatus.GRANTED)
        self.assertEqual(arbiter.active_lease_count(), 2)

    def test_release_is_idempotent(self):
        """Releasing twice is harmless and does not free a newer lease."""
        from services.resource_arbiter import ResourceKind
        arbiter, _ = _arbiter()
        _, first = arbiter.acquire(ResourceKind.ACCELERATOR, "a")
        first.release()
        _, second = arbiter.acquire(ResourceKind.ACCELERATOR, "b")
        first.release()
        arbiter.release(first)
        self.assertTrue(second.active)
        self.assertTrue(arbiter.is_held(ResourceKind.ACCELERATOR))

    def test_release_foreign_lease_raises(self):
        """Releasing a lease this arbiter never issued is a contract violation."""
        from services.resource_arbiter import ResourceKind, ResourceLease
        arbiter, _ = _arbiter()
        other, _ = _arbiter()
        _, foreign = other.acquire(ResourceKind.CAMERA, "x")
        with self.assertRaises(ValueError):
            arbiter.release(foreign)
        with self.assertRaises(ValueError):
            arbiter.release(ResourceLease(kind=ResourceKind.CAMERA, holder="forged"))

    def test_lease_context_manager_releases(self):
        """A lease used as a context manager is released on exit, including on error."""
        from services.resource_arbiter import ResourceKind
        arbiter, _ = _arbiter()
        _, lease = arbiter.acquire(ResourceKind.CAMERA, "a")
        with self.assertRaises(RuntimeError):
            with lease:
                raise RuntimeError("boom")
        self.assertFalse(arbiter.is_held(ResourceKind.CAMERA))

    def test_permission_denied(self):
        """A refusing permission policy yields PERMISSION_DENIED and no lease."""
        from services.resource_arbiter import AcquireStatus, ResourceKind
        arbiter, _ = _arbiter(policy=lambda kind: kind is not ResourceKind.CAMERA)
        status, lease = arbiter.acquire(ResourceKind.CAMERA, "vision")
        self.assertIs(status, AcquireStatus.PERMISSION_DENIED)
        self.assertIsNone(lease)
        self.assertEqual(arbiter.active_lease_count(), 0)

    def test_close_releases_everything(self):
        """close() releases every lease and closes the audio context."""
        from services.resource_arbiter import ResourceKind
        arbiter, factory = _arbiter()
        _, mic = arbiter.acquire(ResourceKind.MICROPHONE, "voice")
        arbiter.acquire(ResourceKind.CAMERA, "vision")
        arbiter.audio_context(mic)
        arbiter.close()
        self.assertEqual(arbiter.active_lease_count(), 0)
        self.assertFalse(arbiter.has_audio_context())
        self.assertTrue(factory.streams[0].closed)


class TestSharedAudioContext(unittest.TestCase):
    """Test the arbiter-owned audio context."""

    def test_requires_microphone_lease(self):
        """audio_context() rejects non-microphone or released leases."""
        from services.resource_arbiter import ResourceError, ResourceKind
        arbiter, _ = _arbiter()
        _, cam = arbiter.acquire(ResourceKind.CAMERA, "vision")
        with self.assertRaises(ResourceError):
            arbiter.audio_context(cam)
        _, mic = arbiter.acquire(ResourceKind.MICROPHONE, "voice")
        mic.release()
        with self.assertRaises(ResourceError):
            arbiter.audio_context(mic)

    def test_single_context_across_leases(self):
        """Reacquiring the microphone resumes the same context; no second stream is opened."""
        from services.resource_arbiter import ResourceKind
        arbiter, factory = _arbiter()
        _, mic = arbiter.acquire(ResourceKind.MICROPHONE, "voice")
        ctx1 = arbiter.audio_context(mic)
        self.assertFalse(ctx1.is_suspended())
        arbiter.suspend_audio_context()
        mic.release()
        self.assertTrue(ctx1.is_suspended())

        _, mic2 = arbiter.acquire(ResourceKind.MICROPHONE, "other-feature")
        ctx2 = arbiter.audio_context(mic2)
        self.assertIs(ctx1, ctx2)
        self.assertFalse(ctx2.is_suspended())
        self.assertEqual(len(factory.streams), 1)
        self.assertEqual(factory.streams[0].started, 2)
        self.assertFalse(factory.streams[0].closed)

    def test_dispatch_isolates_consumer_errors(self):
        """A failing consumer does not stop delivery to the others."""
        from services.audio_context import SharedAudioContext
        from tests.fixtures.synthetic_faces import FakeStreamFactory
        ctx = SharedAudioContext(16000, 256, stream_factory=FakeStreamFactory())
        received = []

        def bad(block):
            raise RuntimeError("consumer bug")

        ctx.add_consumer(bad)
        ctx.add_consumer(received.append)
        ctx.dispatch(np.ones(4, dtype=np.float32))
        self.assertEqual(len(received), 1)
        ctx.remove_consumer(received.append)
        ctx.dispatch(np.ones(4, dtype=np.float32))
        self.assertEqual(len(received), 1)

    def test_stream_callback_flattens_blocks(self):
        """The sounddevice callback delivers mono float32 blocks to consumers."""
        from services.audio_context import SharedAudioContext
        from tests.fixtures.synthetic_faces import FakeStreamFactory
        factory = FakeStreamFactory()
        ctx = SharedAudioContext(16000, 256, stream_factory=factory)
        received = []
        ctx.add_consumer(received.append)
        ctx.resume()
        factory.streams[0].callback(np.zeros((256, 1), dtype=np.float32), 256, None, None)
        self.assertEqual(received[0].shape, (256,))
        self.assertEqual(received[0].dtype, np.float32)

    def test_closed_context_cannot_resume(self):
        """A closed context refuses to resume."""
        from services.audio_context import SharedAudioContext
        from tests.fixtures.synthetic_faces import FakeStreamFactory
        ctx = SharedAudioContext(16000, 256, stream_factory=FakeStreamFactory())
        ctx.resume()
        ctx.close()
        ctx.close()
        with self.assertRaises(RuntimeError):
            ctx.resume()


if __name__ == "__main__":
    unittest.main()
