"""
FIFO endpoint tests.

Run with: python -m pytest pipebridge/tests/test_endpoint.py -v
"""

import os
import tempfile
import threading
import time
import unittest

from pipebridge.core.cancellation import CancellationToken
from pipebridge.exceptions import OpenCancelledError, OpenError, OpenTimeoutError
from pipebridge.ipc import FifoEndpoint, PipeEnd
from pipebridge.tests.support import PeerThread, requires_fifo


class LateReturnEndpoint(FifoEndpoint):
    """Stalls after the read open returns, as if the thread lost the CPU."""

    stall = 0.4

    def _blocking_open(self, path, flags, purpose):
        fd = super()._blocking_open(path, flags, purpose)
        time.sleep(self.stall)
        return fd


@requires_fifo
class TestFifoEndpoint(unittest.TestCase):
    """Test timed and cancellable FIFO opens."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, 'bridge0')
        os.mkfifo(self.path, 0o600)
        self.endpoint = FifoEndpoint(poll_interval=0.01)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_write_end_with_reader(self):
        """Test the write end opens once a reader arrives."""
        reader = PeerThread(self.path, 'read', delay=0.1)
        reader.start()

        with self.endpoint.open(self.path, PipeEnd.WRITE, timeout=5.0) as stream:
            stream.write(b'hello pipe')
        reader.join(5)

        self.assertIsNone(reader.error)
        self.assertEqual(reader.received, b'hello pipe')

    def test_read_end_with_writer(self):
        """Test the read end opens once a writer arrives."""
        writer = PeerThread(self.path, 'write', payload=b'x' * 10000, delay=0.1)
        writer.start()

        with self.endpoint.open(self.path, PipeEnd.READ, timeout=5.0) as stream:
            data = stream.read()
        writer.join(5)

        self.assertIsNone(writer.error)
        self.assertEqual(data, b'x' * 10000)

    def test_write_end_is_blocking(self):
        """Test the returned write stream is back in blocking mode."""
        reader = PeerThread(self.path, 'read')
        reader.start()

        stream = self.endpoint.open(self.path, PipeEnd.WRITE, timeout=5.0)
        try:
            self.assertTrue(os.get_blocking(stream.fileno()))
        finally:
            stream.close()
        reader.join(5)

    def test_write_end_timeout(self):
        """Test the write end gives up when nobody reads."""
        started = time.monotonic()

        with self.assertRaises(OpenTimeoutError) as ctx:
            self.endpoint.open(self.path, PipeEnd.WRITE, timeout=0.2)

        self.assertGreaterEqual(time.monotonic() - started, 0.2)
        self.assertLess(time.monotonic() - started, 5.0)
        self.assertEqual(ctx.exception.path, self.path)

    def test_read_end_timeout(self):
        """Test the blocked read open is released at the deadline."""
        started = time.monotonic()

        with self.assertRaises(OpenTimeoutError):
            self.endpoint.open(self.path, PipeEnd.READ, timeout=0.2)

        self.assertLess(time.monotonic() - started, 5.0)

    def test_read_end_keeps_peer_connected_before_deadline(self):
        """Test a writer that connected in time is kept when the open returns late."""
        writer = PeerThread(self.path, 'write', payload=b'photo', delay=0.05)
        writer.start()
        endpoint = LateReturnEndpoint(poll_interval=0.01)

        with endpoint.open(self.path, PipeEnd.READ, timeout=0.2) as stream:
            data = stream.read()
        writer.join(5)

        self.assertIsNone(writer.error)
        self.assertEqual(data, b'photo')

    def test_read_end_late_return_without_peer(self):
        """Test a late-returning open with no writer still times out."""
        endpoint = LateReturnEndpoint(poll_interval=0.01)

        with self.assertRaises(OpenTimeoutError):
            endpoint.open(self.path, PipeEnd.READ, timeout=0.2)

    def test_read_end_cancel(self):
        """Test cancelling releases a blocked read open."""
        token = CancellationToken()
        threading.Timer(0.1, token.cancel).start()

        with self.assertRaises(OpenCancelledError):
            self.endpoint.open(self.path, PipeEnd.READ, token=token, timeout=10.0)

    def test_write_end_cancel(self):
        """Test cancelling stops the write end polling."""
        token = CancellationToken()
        threading.Timer(0.1, token.cancel).start()

        with self.assertRaises(OpenCancelledError):
            self.endpoint.open(self.path, PipeEnd.WRITE, token=token)

    def test_already_cancelled(self):
        """Test a cancelled token fails fast for both ends."""
        token = CancellationToken()
        token.cancel()

        for end in PipeEnd:
            with self.assertRaises(OpenCancelledError):
                self.endpoint.open(self.path, end, token=token, timeout=10.0)

    def test_missing_fifo(self):
        """Test a missing path is an open error, not a timeout."""
        missing = os.path.join(self.tmpdir.name, 'missing')

        for end in PipeEnd:
            with self.assertRaises(OpenError) as ctx:
                self.endpoint.open(missing, end, timeout=1.0)
            self.assertNotIsInstance(ctx.exception, OpenTimeoutError)
            self.assertEqual(ctx.exception.side, 'pipe')


if __name__ == '__main__':
    unittest.main()
