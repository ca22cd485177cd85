# listener.py
#
# Live and offline front ends for the receiver. Live capture runs the
# device callback on the audio thread, which only enqueues blocks; a single
# worker thread drains the queue, computes a spectral frame per block and
# feeds it to the Receiver.

import logging
import queue
import threading
from typing import List, Optional, Sequence

import numpy as np

from .config import SAMPLE_RATE, BLOCK_SIZE, FFT_SIZE, ReceiverConfig
from .devices import open_input_stream
from .errors import CaptureDeviceError
from .protocols import Protocol
from .receiver import DecodedMessage, Receiver
from .spectrum import SpectrumAnalyser
from .wav import read_wav

logger = logging.getLogger(__name__)


class Listener:
    """
    Scoped capture session around a Receiver.

    start() acquires the input stream and a fresh analyser together and
    stop() releases them together. Usable as a context manager:

        with Listener(receiver):
            input()
    """

    def __init__(self, receiver: Receiver, stream_factory=open_input_stream,
                 sample_rate: int = SAMPLE_RATE, block_size: int = BLOCK_SIZE,
                 fft_size: int = FFT_SIZE):
        self.receiver = receiver
        self.stream_factory = stream_factory
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.fft_size = fft_size

        self._stream = None
        self._thread = None
        self._analyser = None
        self._queue = queue.Queue()
        self._stop = threading.Event()

    @property
    def is_listening(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """
        Opens the capture device and starts decoding.

        Raises:
            CaptureDeviceError: If the device cannot be opened or started
        """
        if self.is_listening:
            logger.warning("Listener already running")
            return

        self._queue = queue.Queue()
        self._stop.clear()
        stream = None
        try:
            stream = self.stream_factory(self.sample_rate, self.block_size, self._queue.put)
            stream.start()
        except Exception as e:
            if stream is not None:
                stream.close()
            if isinstance(e, CaptureDeviceError):
                raise
            raise CaptureDeviceError(f"Could not start audio capture: {e}") from e

        self._stream = stream
        self.receiver.sample_rate = getattr(stream, 'samplerate', None) or self.sample_rate
        self._analyser = SpectrumAnalyser(self.fft_size)
        self.receiver.reset()

        self._thread = threading.Thread(target=self._run, name='tonelink-listener', daemon=True)
        self._thread.start()
        logger.info(f"Listening at {self.receiver.sample_rate:g} Hz")

    def stop(self):
        """Stops decoding and releases the capture device. Safe to call twice."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._stream is not None:
            try:
                self._stream.stop()
            finally:
                self._stream.close()
                self._stream = None
                self.receiver.reset_session()
                logger.info("Listening stopped.")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def process_block(self, block: np.ndarray) -> Optional[str]:
        """Runs one capture block through the analyser and the receiver."""
        if self._analyser is None:
            self._analyser = SpectrumAnalyser(self.fft_size)
        self._analyser.push(block)
        return self.receiver.process_frame(self._analyser.frame())

    def _run(self):
        while not self._stop.is_set():
            try:
                block = self._queue.get(timeout=0.5)
                self.process_block(block)
            except queue.Empty:
                continue
            except Exception:
                logger.exception("Error in the receive loop. Resetting session.")
                self.receiver.reset_session()


def decode_samples(samples: np.ndarray, sample_rate: int,
                   protocols: Optional[Sequence[Protocol]] = None,
                   config: Optional[ReceiverConfig] = None,
                   block_size: int = BLOCK_SIZE,
                   fft_size: int = FFT_SIZE) -> List[DecodedMessage]:
    """
    Decodes recorded audio as if it had been captured live.

    Timeouts are measured in audio time, so a long recording decodes the
    same no matter how fast it is processed. A session still open at the
    end of the samples is dropped without a message.
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim == 2:
        samples = samples.mean(axis=1)

    position = 0
    receiver = Receiver(protocols, config, sample_rate=sample_rate,
                        clock=lambda: position / sample_rate)
    analyser = SpectrumAnalyser(fft_size)

    for start in range(0, len(samples), block_size):
        block = samples[start:start + block_size]
        position = start + len(block)
        analyser.push(block)
        receiver.process_frame(analyser.frame())

    if receiver.buffer:
        logger.warning(f"Recording ended mid-message. Discarding: \"{receiver.buffer}\"")
    return list(receiver.messages)


def decode_wav(source, protocols: Optional[Sequence[Protocol]] = None,
               config: Optional[ReceiverConfig] = None,
               block_size: int = BLOCK_SIZE) -> List[DecodedMessage]:
    """Reads a WAV file (path, file object or bytes) and decodes it."""
    samples, sample_rate = read_wav(source)
    logger.info(f"Decoding {len(samples) / sample_rate:.2f}s of audio at {sample_rate} Hz")
    return decode_samples(samples, sample_rate, protocols, config, block_size)
