"""
Bridge session tests.

These tests drive real FIFOs: a peer thread plays the external
application that opens the pipe path.

Run with: python -m pytest pipebridge/tests/test_session.py -v
"""

import os
import stat
import tempfile
import threading
import unittest

from pipebridge.bridge import AsyncLauncher, BridgeSession, Direction, SessionState, TransferResult
from pipebridge.exceptions import (
    ErrorKind,
    OpenError,
    OpenTimeoutError,
    ProvisionError,
    StateError,
)
from pipebridge.filesystem import MemoryFileProvider, VirtualFileProvider
from pipebridge.ipc import FifoEndpoint, PipeProvisioner, is_fifo
from pipebridge.tests.support import PeerThread, RecordingStream, requires_fifo, wait_until


class StubProvider(VirtualFileProvider):
    """Hands out a prepared stream and records what was opened."""

    def __init__(self, stream):
        self.stream = stream
        self.opened = []

    def open_for_read(self, virtual_path):
        self.opened.append(('read', virtual_path))
        return self.stream

    def open_for_write(self, virtual_path):
        self.opened.append(('write', virtual_path))
        return self.stream


@requires_fifo
class TestBridgeSession(unittest.TestCase):
    """Test session lifecycle over real FIFOs."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.vfs = MemoryFileProvider()
        self.sessions = []

    def tearDown(self):
        for session in self.sessions:
            session.close()
            session.wait(5)
        self.tmpdir.cleanup()

    def pipe(self, name='bridge0'):
        return os.path.join(self.tmpdir.name, name)

    def make_session(self, virtual_path, direction, pipe_path=None, provider=None, **kwargs):
        kwargs.setdefault('open_timeout', 10.0)
        session = BridgeSession(
            virtual_path,
            pipe_path or self.pipe(),
            direction,
            provider or self.vfs,
            endpoint=FifoEndpoint(poll_interval=0.01),
            **kwargs
        )
        self.sessions.append(session)
        return session

    # Export

    def test_export_secret_photo(self):
        """Test an external reader receives the virtual file byte for byte."""
        payload = os.urandom(100 * 1024)
        self.vfs.write_file('/secret.jpg', payload)
        session = self.make_session('/secret.jpg', Direction.EXPORT, self.pipe('secret.jpg'))

        self.assertEqual(session.state, SessionState.IDLE)
        session.start()
        reader = PeerThread(session.real_path, 'read')
        reader.start()

        self.assertEqual(session.wait(10), SessionState.CLOSED)
        reader.join(10)

        self.assertIsNone(reader.error)
        self.assertEqual(reader.received, payload)
        self.assertEqual(session.result.bytes_copied, len(payload))
        self.assertFalse(session.result.cancelled)
        self.assertIsNone(session.error)
        self.assertTrue(is_fifo(session.real_path))

    def test_export_empty_file(self):
        """Test an empty virtual file gives the reader an immediate EOF."""
        self.vfs.write_file('/empty.bin', b'')
        session = self.make_session('/empty.bin', Direction.EXPORT)
        session.start()
        reader = PeerThread(session.real_path, 'read')
        reader.start()

        self.assertEqual(session.wait(10), SessionState.CLOSED)
        reader.join(10)
        self.assertEqual(reader.received, b'')
        self.assertEqual(session.result.bytes_copied, 0)

    def test_export_missing_file(self):
        """Test a missing virtual file fails the session on the virtual side."""
        session = self.make_session('/missing.jpg', Direction.EXPORT)
        session.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.OPEN)
        self.assertIsInstance(session.error, OpenError)
        self.assertEqual(session.error.side, 'virtual')
        self.assertIsNone(session.worker)

    def test_export_unmounted_provider(self):
        """Test an unmounted provider fails the session."""
        self.vfs.write_file('/a.txt', b'data')
        self.vfs.unmount()
        session = self.make_session('/a.txt', Direction.EXPORT)
        session.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.OPEN)

    # Import

    def test_import_round_trip(self):
        """Test bytes written by an external writer land in the virtual file."""
        payload = os.urandom(300 * 1024)
        session = self.make_session('/inbox.bin', Direction.IMPORT)
        session.start()
        writer = PeerThread(session.real_path, 'write', payload=payload, piece_size=5000)
        writer.start()

        self.assertEqual(session.wait(10), SessionState.CLOSED)
        writer.join(10)

        self.assertIsNone(writer.error)
        self.assertEqual(self.vfs.read_file('/inbox.bin'), payload)
        self.assertEqual(session.result.bytes_copied, len(payload))
        self.assertEqual(self.vfs.stat('/inbox.bin').sync_count, 1)

    def test_import_timeout(self):
        """Test no writer before the deadline fails the session with TIMEOUT."""
        session = self.make_session('/inbox.bin', Direction.IMPORT, open_timeout=0.2)
        future = session.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.TIMEOUT)
        self.assertIsInstance(session.error, OpenTimeoutError)
        self.assertIs(future.exception(timeout=5), session.error)

    def test_import_read_only_target(self):
        """Test a read-only virtual file refuses the import."""
        self.vfs.write_file('/locked.bin', b'keep', read_only=True)
        session = self.make_session('/locked.bin', Direction.IMPORT)
        session.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.OPEN)
        self.assertEqual(self.vfs.read_file('/locked.bin'), b'keep')

    # Provisioning

    def test_provision_failure(self):
        """Test a pipe path in a missing directory fails before any open."""
        provider = StubProvider(RecordingStream('virtual', []))
        session = self.make_session(
            '/a.txt', Direction.EXPORT,
            pipe_path=os.path.join(self.tmpdir.name, 'missing', 'p0'),
            provider=provider
        )
        session.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.PROVISION)
        self.assertIsInstance(session.error, ProvisionError)
        self.assertEqual(provider.opened, [])

    def test_regular_file_at_pipe_path(self):
        """Test a regular file at the pipe path is reported, not replaced."""
        path = self.pipe()
        with open(path, 'wb') as f:
            f.write(b'not a pipe')
        self.vfs.write_file('/a.txt', b'data')
        session = self.make_session('/a.txt', Direction.EXPORT, path)
        session.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.PROVISION)
        with open(path, 'rb') as f:
            self.assertEqual(f.read(), b'not a pipe')

    def test_pipe_mode(self):
        """Test the FIFO is created with the session's mode."""
        self.vfs.write_file('/a.txt', b'data')
        session = self.make_session('/a.txt', Direction.EXPORT, pipe_mode=0o640)
        session.start()

        self.assertTrue(wait_until(lambda: is_fifo(session.real_path)))
        self.assertEqual(stat.S_IMODE(os.lstat(session.real_path).st_mode), 0o640)

        reader = PeerThread(session.real_path, 'read')
        reader.start()
        self.assertEqual(session.wait(10), SessionState.CLOSED)
        reader.join(10)
        self.assertEqual(reader.received, b'data')

    def test_existing_fifo_reused(self):
        """Test an existing FIFO is used as is."""
        path = self.pipe()
        PipeProvisioner().ensure(path, 0o604)
        self.vfs.write_file('/a.txt', b'reuse')
        session = self.make_session('/a.txt', Direction.EXPORT, path, pipe_mode=0o600)
        session.start()
        reader = PeerThread(path, 'read')
        reader.start()

        self.assertEqual(session.wait(10), SessionState.CLOSED)
        reader.join(10)
        self.assertEqual(reader.received, b'reuse')
        self.assertEqual(stat.S_IMODE(os.lstat(path).st_mode), 0o604)

    # Cleanup on failure

    def test_virtual_stream_closed_when_pipe_open_fails(self):
        """Test the virtual stream is closed before the session reports FAILED."""
        events = []
        stream = RecordingStream('virtual', events, data=b'payload')
        provider = StubProvider(stream)
        seen = []
        session = self.make_session(
            '/a.txt', Direction.EXPORT,
            provider=provider,
            open_timeout=0.2,
            on_complete=lambda s: seen.append((s.state, stream.closed))
        )
        future = session.start()
        future.exception(timeout=10)

        self.assertEqual(session.state, SessionState.FAILED)
        self.assertEqual(session.error_kind, ErrorKind.TIMEOUT)
        self.assertEqual(events, ['close virtual'])
        self.assertEqual(stream.close_calls, 1)
        self.assertEqual(seen, [(SessionState.FAILED, True)])

    def test_transfer_failure_releases_streams(self):
        """Test a write failure into the virtual file fails the session."""
        events = []
        stream = RecordingStream('virtual', events, fail_write_after=1)
        session = self.make_session('/a.txt', Direction.IMPORT, provider=StubProvider(stream),
                                    chunk_size=1024)
        session.start()
        writer = PeerThread(session.real_path, 'write', payload=b'z' * 8192, piece_size=1024)
        writer.start()

        self.assertEqual(session.wait(10), SessionState.FAILED)
        writer.join(10)
        self.assertEqual(session.error_kind, ErrorKind.TRANSFER)
        self.assertEqual(session.error.side, 'write')
        self.assertTrue(stream.closed)
        self.assertTrue(session.worker.released)

    # Control

    def test_start_returns_immediately(self):
        """Test start() does not wait for the peer."""
        self.vfs.write_file('/a.txt', b'data')
        session = self.make_session('/a.txt', Direction.EXPORT, open_timeout=None)

        future = session.start()

        self.assertFalse(future.done())
        self.assertIn(session.state, (SessionState.PROVISIONING, SessionState.OPENING))
        self.assertTrue(wait_until(lambda: session.state is SessionState.OPENING))

    def test_start_twice(self):
        """Test a session starts exactly once."""
        self.vfs.write_file('/a.txt', b'data')
        session = self.make_session('/a.txt', Direction.EXPORT)
        session.start()

        with self.assertRaises(StateError):
            session.start()

        reader = PeerThread(session.real_path, 'read')
        reader.start()
        self.assertEqual(session.wait(10), SessionState.CLOSED)
        reader.join(10)
        with self.assertRaises(StateError):
            session.start()

    def test_start_while_streaming(self):
        """Test a streaming session keeps its single worker and thread."""
        launcher = AsyncLauncher()
        hold = threading.Event()
        session = self.make_session('/a.txt', Direction.IMPORT, launcher=launcher)
        session.start()
        writer = PeerThread(session.real_path, 'write', payload=b'first',
                            before_close=lambda f: hold.wait(10))
        writer.start()
        try:
            self.assertTrue(wait_until(lambda: session.state is SessionState.STREAMING))
            worker = session.worker

            with self.assertRaises(StateError):
                session.start()

            self.assertIs(session.worker, worker)
            self.assertEqual(launcher.get_stats()['launched'], 1)
        finally:
            hold.set()

        self.assertEqual(session.wait(10), SessionState.CLOSED)
        writer.join(10)
        self.assertEqual(self.vfs.read_file('/a.txt'), b'first')

    def test_close_idle(self):
        """Test closing an unstarted session."""
        calls = []
        session = self.make_session('/a.txt', Direction.EXPORT, on_complete=calls.append)

        session.close()

        self.assertEqual(session.state, SessionState.CLOSED)
        self.assertTrue(session.result.cancelled)
        self.assertEqual(calls, [session])
        self.assertFalse(os.path.exists(session.real_path))
        with self.assertRaises(StateError):
            session.start()

        session.close()
        self.assertEqual(calls, [session])

    def test_close_while_opening(self):
        """Test close() releases a session waiting for its peer."""
        for direction in Direction:
            with self.subTest(direction=direction):
                self.vfs.write_file('/a.txt', b'data')
                session = self.make_session('/a.txt', direction, self.pipe(direction.value),
                                            open_timeout=None)
                session.start()
                self.assertTrue(wait_until(lambda: session.state is SessionState.OPENING))

                session.close()

                self.assertEqual(session.wait(10), SessionState.CLOSED)
                self.assertTrue(session.result.cancelled)
                self.assertIsNone(session.error)
                self.assertIsNone(session.worker)

    def test_close_while_streaming(self):
        """Test close() stops the copy loop before its next read."""
        progressed = threading.Event()
        session = self.make_session('/inbox.bin', Direction.IMPORT,
                                    on_progress=lambda total: progressed.set())

        def hold_open(f):
            wait_until(lambda: session.cancelled)
            f.write(b'tail')
            f.flush()

        session.start()
        writer = PeerThread(session.real_path, 'write', payload=b'h' * 4096,
                            before_close=hold_open)
        writer.start()
        self.assertTrue(progressed.wait(10))
        self.assertEqual(session.state, SessionState.STREAMING)

        session.close()

        self.assertEqual(session.wait(10), SessionState.CLOSED)
        writer.join(10)
        self.assertTrue(session.result.cancelled)
        self.assertGreaterEqual(session.result.bytes_copied, 4096)
        self.assertTrue(self.vfs.read_file('/inbox.bin').startswith(b'h' * 4096))

    def test_close_terminal_is_noop(self):
        """Test close() after failure keeps the failure."""
        session = self.make_session('/missing', Direction.EXPORT)
        session.start()
        self.assertEqual(session.wait(10), SessionState.FAILED)

        session.close()

        self.assertEqual(session.state, SessionState.FAILED)
        self.assertIsNotNone(session.error)

    def test_future_and_callback(self):
        """Test the future result and one completion callback."""
        calls = []
        self.vfs.write_file('/a.txt', b'x' * 1000)
        session = self.make_session('/a.txt', Direction.EXPORT, on_complete=calls.append)
        future = session.start()
        reader = PeerThread(session.real_path, 'read')
        reader.start()

        result = future.result(timeout=10)
        reader.join(10)

        self.assertIsInstance(result, TransferResult)
        self.assertEqual(result.bytes_copied, 1000)
        self.assertEqual(calls, [session])

    def test_callback_error_does_not_fail_session(self):
        """Test a raising callback is logged and ignored."""
        def broken(_session):
            raise RuntimeError("callback bug")

        self.vfs.write_file('/a.txt', b'x')
        session = self.make_session('/a.txt', Direction.EXPORT, on_complete=broken)
        future = session.start()
        reader = PeerThread(session.real_path, 'read')
        reader.start()

        self.assertEqual(future.result(timeout=10).bytes_copied, 1)
        reader.join(10)
        self.assertEqual(session.state, SessionState.CLOSED)

    def test_concurrent_sessions_are_isolated(self):
        """Test two sessions on distinct pipes never mix bytes."""
        self.vfs.write_file('/one.bin', b'1' * 50000)
        self.vfs.write_file('/two.bin', b'2' * 70000)
        first = self.make_session('/one.bin', Direction.EXPORT, self.pipe('one'))
        second = self.make_session('/two.bin', Direction.EXPORT, self.pipe('two'))
        first.start()
        second.start()
        readers = [PeerThread(first.real_path, 'read'), PeerThread(second.real_path, 'read')]
        for reader in readers:
            reader.start()

        self.assertEqual(first.wait(10), SessionState.CLOSED)
        self.assertEqual(second.wait(10), SessionState.CLOSED)
        for reader in readers:
            reader.join(10)
        self.assertEqual(readers[0].received, b'1' * 50000)
        self.assertEqual(readers[1].received, b'2' * 70000)
        self.assertNotEqual(first.session_id, second.session_id)

    def test_describe(self):
        """Test the session snapshot."""
        session = self.make_session('photos//secret.jpg', Direction.EXPORT)

        info = session.describe()

        self.assertEqual(info['virtual_path'], '/photos/secret.jpg')
        self.assertEqual(info['direction'], 'export')
        self.assertEqual(info['state'], 'IDLE')
        self.assertIsNone(info['error'])
        self.assertIn('EXPORT', repr(session))


if __name__ == '__main__':
    unittest.main()
