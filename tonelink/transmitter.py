# transmitter.py
#
# Renders packets as tones, either live through an output device or offline
# into a PCM buffer. Both paths share the same token and timing logic.

import logging
import math
import threading
from typing import Callable, Iterator, NamedTuple, Optional, Sequence

import numpy as np

from .config import SAMPLE_RATE, LEADING_SILENCE, DECAY_DURATION_MS, DECAY_FLOOR
from .devices import SoundDeviceOutput
from .packet import build_packet, prepare_payload
from .protocols import Protocol
from .wav import to_wav_bytes

logger = logging.getLogger(__name__)


class ProgressEvent(NamedTuple):
    """Sent before each tone, and once with only total set after the last one."""
    index: Optional[int]
    total: int
    token: Optional[str]
    frequency: Optional[float]


ProgressCallback = Callable[[Optional[int], int, Optional[str], Optional[float]], None]


def render_tone(frequencies: Sequence[float], duration_ms: int, volume: float,
                sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """
    Renders one or more sine tones sounded together.

    The mix is divided by the number of tones so a DTMF pair peaks at the
    same level as a single tone. The last DECAY_DURATION_MS fall off
    exponentially to avoid a click at the tone edge.
    """
    n_samples = int(sample_rate * duration_ms / 1000)
    if not frequencies or volume <= 0 or n_samples == 0:
        return np.zeros(n_samples, dtype=np.float32)

    t = np.arange(n_samples) / sample_rate
    wave = np.zeros(n_samples)
    for freq in frequencies:
        wave += np.sin(2 * np.pi * freq * t)
    wave /= len(frequencies)

    envelope = np.full(n_samples, volume)
    decay_samples = min(n_samples, int(sample_rate * DECAY_DURATION_MS / 1000))
    if decay_samples > 1:
        envelope[-decay_samples:] = np.geomspace(volume, min(volume, DECAY_FLOOR), decay_samples)

    return (wave * envelope).astype(np.float32)


def _packet_for(message: str, protocol: Protocol) -> Optional[list]:
    payload = prepare_payload(message, protocol)
    if not payload:
        logger.warning(f"Nothing to send: no characters supported by protocol '{protocol.id}'")
        return None
    return build_packet(payload, protocol)


def _tone_frequencies(token: str, protocol: Protocol) -> tuple:
    tone = protocol.tone_for(token)
    if tone is None:
        logger.warning(f"Token '{token}' not in frequency map of '{protocol.id}'. Sending silence.")
        return ()
    return tone.frequencies


def transmission_events(message: str, volume: float, protocol: Protocol, *,
                        pause_ms: Optional[int] = None, output=None,
                        cancel: Optional[threading.Event] = None,
                        sample_rate: int = SAMPLE_RATE) -> Iterator[ProgressEvent]:
    """
    Plays a message token by token, yielding a ProgressEvent before each tone.

    The tone for an event is played when the consumer asks for the next one,
    so iterating the generator to the end performs the whole transmission.
    The final event has index, token and frequency set to None. Setting
    cancel stops the transmission before the next token.
    """
    tokens = _packet_for(message, protocol)
    if tokens is None:
        return

    output = output or SoundDeviceOutput()
    cancel = cancel or threading.Event()
    pause_s = (protocol.pause_ms if pause_ms is None else pause_ms) / 1000
    level = max(0.0, min(1.0, volume)) * protocol.gain
    total = len(tokens)

    logger.info(f"Starting transmission of {total} tokens (protocol: {protocol.name})")
    for i, token in enumerate(tokens):
        if cancel.is_set():
            logger.info(f"Transmission cancelled after {i} of {total} tokens")
            break
        frequencies = _tone_frequencies(token, protocol)
        yield ProgressEvent(i, total, token, frequencies[0] if frequencies else None)

        output.play(render_tone(frequencies, protocol.tone_ms, level, sample_rate), sample_rate)
        cancel.wait(pause_s)
    else:
        logger.info("Message transmission finished.")

    yield ProgressEvent(None, total, None, None)


def transmit(message: str, volume: float, protocol: Protocol,
             on_progress: Optional[ProgressCallback] = None, *,
             pause_ms: Optional[int] = None, output=None,
             cancel: Optional[threading.Event] = None,
             sample_rate: int = SAMPLE_RATE) -> bool:
    """
    Plays a message and returns once the last tone has finished.

    Returns:
        True if every token was sent, False if the message had nothing to
        send or the transmission was cancelled
    """
    sent, total = 0, 0
    for event in transmission_events(message, volume, protocol, pause_ms=pause_ms,
                                     output=output, cancel=cancel, sample_rate=sample_rate):
        if on_progress:
            on_progress(*event)
        if event.index is not None:
            sent += 1
        total = event.total
    return total > 0 and sent == total


def render_to_buffer(message: str, volume: float, protocol: Protocol, *,
                     pause_ms: Optional[int] = None,
                     sample_rate: int = SAMPLE_RATE) -> Optional[np.ndarray]:
    """
    Renders a message into a PCM buffer instead of playing it.

    The buffer starts with LEADING_SILENCE seconds of silence so the
    receiving side has time to arm.

    Returns:
        float32 samples, or None if the message had nothing to send
    """
    tokens = _packet_for(message, protocol)
    if tokens is None:
        return None

    pause = protocol.pause_ms if pause_ms is None else pause_ms
    slot_s = (protocol.tone_ms + pause) / 1000
    level = max(0.0, min(1.0, volume)) * protocol.gain
    buffer = np.zeros(math.ceil(sample_rate * (LEADING_SILENCE + len(tokens) * slot_s)), dtype=np.float32)

    for i, token in enumerate(tokens):
        frequencies = _tone_frequencies(token, protocol)
        if not frequencies:
            continue
        tone = render_tone(frequencies, protocol.tone_ms, level, sample_rate)
        start = int(round(sample_rate * (LEADING_SILENCE + i * slot_s)))
        end = min(len(buffer), start + len(tone))
        buffer[start:end] = tone[:end - start]

    logger.info(f"Rendered {len(tokens)} tokens into {len(buffer) / sample_rate:.2f}s of audio")
    return buffer


def render_wav(message: str, volume: float, protocol: Protocol, *,
               pause_ms: Optional[int] = None,
               sample_rate: int = SAMPLE_RATE) -> Optional[bytes]:
    """Renders a message straight to WAV bytes. None if there was nothing to send."""
    buffer = render_to_buffer(message, volume, protocol, pause_ms=pause_ms, sample_rate=sample_rate)
    if buffer is None:
        return None
    return to_wav_bytes(buffer, sample_rate)
