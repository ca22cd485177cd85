# devices.py
#
# Thin adapters around sounddevice. The modem core only ever talks to these
# through play(samples, sample_rate) and a stream with start/stop/close, so
# tests and hosts can hand in their own devices.

import logging

import numpy as np

from .errors import CaptureDeviceError

logger = logging.getLogger(__name__)


class SoundDeviceOutput:
    """Plays rendered tones on the default output device."""

    def play(self, samples: np.ndarray, sample_rate: int):
        import sounddevice as sd
        sd.play(samples, sample_rate)
        sd.wait()


def open_input_stream(sample_rate: int, block_size: int, callback):
    """
    Opens a mono capture stream that hands every block to callback(block).

    Raises:
        CaptureDeviceError: If no capture device can be opened
    """
    try:
        import sounddevice as sd
    except OSError as e:
        # PortAudio library missing on this machine
        raise CaptureDeviceError(f"Audio backend unavailable: {e}") from e

    def audio_callback(indata, frames, time, status):
        if status:
            logger.warning(f"Capture status: {status}")
        callback(indata[:, 0].copy())

    try:
        return sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            callback=audio_callback,
            blocksize=block_size,
        )
    except (sd.PortAudioError, ValueError) as e:
        raise CaptureDeviceError(f"Could not open capture device: {e}") from e
