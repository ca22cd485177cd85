import time
from unittest.mock import Mock

import numpy as np
import pytest

from tonelink.errors import CaptureDeviceError
from tonelink.listener import Listener
from tonelink.receiver import Receiver


class FakeStream:
    """Stands in for a sounddevice InputStream."""

    def __init__(self, callback, samplerate=48000, fail_on_start=False):
        self.callback = callback
        self.samplerate = samplerate
        self.fail_on_start = fail_on_start
        self.started = False
        self.closed = False

    def start(self):
        if self.fail_on_start:
            raise RuntimeError("device busy")
        self.started = True

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


class FakeStreamFactory:
    def __init__(self, **stream_kwargs):
        self.stream_kwargs = stream_kwargs
        self.streams = []

    def __call__(self, sample_rate, block_size, callback):
        stream = FakeStream(callback, **self.stream_kwargs)
        self.streams.append(stream)
        return stream


def wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def receiver():
    return Mock(spec=Receiver)


class TestListenerLifecycle:
    """Test cases for acquiring and releasing the capture device."""

    def test_start_and_stop(self, receiver):
        """Test that start opens the stream and stop releases it."""
        factory = FakeStreamFactory()
        listener = Listener(receiver, stream_factory=factory)

        listener.start()
        stream = factory.streams[0]
        assert stream.started
        assert listener.is_listening
        receiver.reset.assert_called_once()

        listener.stop()
        assert not listener.is_listening
        assert not stream.started
        assert stream.closed
        receiver.reset_session.assert_called_once()

    def test_device_sample_rate_is_used(self, receiver):
        """Test that the rate reported by the device reaches the receiver."""
        listener = Listener(receiver, stream_factory=FakeStreamFactory(samplerate=48000))
        with listener:
            assert receiver.sample_rate == 48000

    def test_context_manager_stops(self, receiver):
        """Test that leaving the block releases the device."""
        factory = FakeStreamFactory()
        with Listener(receiver, stream_factory=factory) as listener:
            assert listener.is_listening
        assert factory.streams[0].closed
        assert not listener.is_listening

    def test_stop_twice(self, receiver):
        """Test that stop is idempotent."""
        listener = Listener(receiver, stream_factory=FakeStreamFactory())
        listener.start()
        listener.stop()
        listener.stop()
        receiver.reset_session.assert_called_once()

    def test_factory_error_propagates(self, receiver):
        """Test that a device error from the factory reaches the caller."""
        factory = Mock(side_effect=CaptureDeviceError("no microphone"))
        listener = Listener(receiver, stream_factory=factory)
        with pytest.raises(CaptureDeviceError):
            listener.start()
        assert not listener.is_listening

    def test_start_failure_releases_stream(self, receiver):
        """Test that a stream which fails to start is closed and reported."""
        factory = FakeStreamFactory(fail_on_start=True)
        listener = Listener(receiver, stream_factory=factory)
        with pytest.raises(CaptureDeviceError, match="device busy"):
            listener.start()
        assert factory.streams[0].closed
        assert not listener.is_listening
        receiver.reset.assert_not_called()


class TestListenerLoop:
    """Test cases for the worker thread."""

    def test_blocks_reach_receiver(self, receiver):
        """Test that blocks from the callback are analysed and fed on."""
        factory = FakeStreamFactory()
        with Listener(receiver, stream_factory=factory):
            factory.streams[0].callback(np.zeros(512, dtype=np.float32))
            assert wait_for(lambda: receiver.process_frame.called)

        frame = receiver.process_frame.call_args[0][0]
        assert frame.shape == (1024,)

    def test_errors_reset_session_and_keep_running(self, receiver):
        """Test that an exception in processing does not kill the loop."""
        receiver.process_frame.side_effect = RuntimeError("bad frame")
        factory = FakeStreamFactory()
        listener = Listener(receiver, stream_factory=factory)
        listener.start()
        try:
            factory.streams[0].callback(np.zeros(512, dtype=np.float32))
            assert wait_for(lambda: receiver.reset_session.called)
            assert listener.is_listening
        finally:
            listener.stop()

    def test_process_block_without_device(self):
        """Test driving the pipeline directly with audio blocks."""
        listener = Listener(Receiver())
        assert listener.process_block(np.zeros(512)) is None
