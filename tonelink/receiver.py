# receiver.py
#
# Turns a stream of spectral frames back into messages. Three pieces run
# once per frame, in this order:
#
#   1. NoiseTracker  - AGC: follows the ambient noise floor and sets the
#                      detection threshold.
#   2. debounce      - IDLE/COOLDOWN: a tone is read from its loudest frame
#                      once it has settled. A held tone spans many frames, so
#                      after a detection the receiver waits for quiet frames
#                      before accepting the next tone.
#   3. PacketFramer  - IDLE/RECEIVING: START/STOP framing, checksum or digit
#                      decoding, timeouts.
#
# All state is owned by a single Receiver and only touched from the thread
# that calls process_frame().

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from . import codec
from .config import SAMPLE_RATE, START_TOKEN, STOP_TOKEN, DTMF_LOW_BAND, DTMF_HIGH_BAND, ReceiverConfig
from .packet import checksum
from .protocols import DTMF_HIGH_FREQUENCIES, DTMF_LOW_FREQUENCIES, Protocol, SingleTone, get_protocol
from .quality import SignalQuality, estimate_signal_quality

logger = logging.getLogger(__name__)

ODD_DATA_TEXT = '[error: odd data]'


class MessageStatus(Enum):
    SUCCESS = 'success'
    ERROR = 'error'


@dataclass(frozen=True)
class DecodedMessage:
    text: str
    status: MessageStatus
    timestamp: datetime

    @property
    def ok(self) -> bool:
        return self.status is MessageStatus.SUCCESS


class FramingState(Enum):
    IDLE = 'idle'
    RECEIVING = 'receiving'


class ToneState(Enum):
    IDLE = 'idle'
    COOLDOWN = 'cooldown'


# --- AGC ---

class NoiseTracker:
    """Exponentially smoothed noise floor and the detection threshold derived from it."""

    def __init__(self, config: ReceiverConfig):
        self.config = config
        self.reset()

    def reset(self):
        self.noise_level = self.config.initial_noise_level
        self.threshold = self.config.initial_threshold

    def update(self, peak: float, mean: float) -> int:
        # Only frames that look like background noise move the estimate
        if peak < self.threshold:
            s = self.config.noise_sensitivity
            self.noise_level = self.noise_level * (1 - s) + mean * s
        target = self.noise_level + self.config.threshold_offset
        clamped = max(self.config.min_threshold, min(self.config.max_threshold, target))
        self.threshold = int(math.floor(clamped + 0.5))
        return self.threshold


# --- Recognition ---

def peak_position(values: np.ndarray) -> float:
    """
    Bin index of the maximum. Byte quantisation flattens the top of a wide
    peak into a run of equal bins; such a run resolves to its middle.
    """
    first = int(np.argmax(values))
    last = first
    while last + 1 < len(values) and values[last + 1] == values[first]:
        last += 1
    return (first + last) / 2


class ToneDetector:
    """
    Maps a loud frame to a token of one of the accepted protocols.

    Dual-tone protocols are tried first, then single-tone ones. Within each
    kind the first listed protocol that recognises the tone wins.
    """

    def __init__(self, protocols: Sequence[Protocol], config: ReceiverConfig):
        self.config = config
        self._dual = [
            (p, {tone.frequencies: token for token, tone in p.tones.items()})
            for p in protocols if p.is_dual_tone
        ]
        self._single = []
        for p in protocols:
            if p.is_dual_tone:
                continue
            tokens = [t for t, tone in p.tones.items() if isinstance(tone, SingleTone)]
            freqs = np.array([p.tones[t].frequency for t in tokens])
            self._single.append((p, tokens, freqs))

    def identify(self, frame: np.ndarray, threshold: float,
                 sample_rate: float) -> Optional[Tuple[str, Protocol]]:
        freq_per_bin = sample_rate / (2 * len(frame))
        if self._dual:
            match = self._identify_dual(frame, threshold, freq_per_bin)
            if match:
                return match
        if self._single:
            return self._identify_single(frame, freq_per_bin)
        return None

    def _band_peak(self, frame, band, freq_per_bin):
        lo = max(0, int(math.ceil(band[0] / freq_per_bin)))
        hi = min(len(frame), int(band[1] / freq_per_bin) + 1)
        if lo >= hi:
            return 0, 0.0
        segment = frame[lo:hi]
        position = peak_position(segment)
        return int(segment.max()), (lo + position) * freq_per_bin

    def _grid_tone(self, frame, band, grid, threshold, freq_per_bin):
        amplitude, freq = self._band_peak(frame, band, freq_per_bin)
        if amplitude <= threshold:
            return None
        best = min(grid, key=lambda c: abs(freq - c))
        return best if abs(freq - best) <= self.config.dtmf_tolerance else None

    def _identify_dual(self, frame, threshold, freq_per_bin):
        low = self._grid_tone(frame, DTMF_LOW_BAND, DTMF_LOW_FREQUENCIES, threshold, freq_per_bin)
        high = self._grid_tone(frame, DTMF_HIGH_BAND, DTMF_HIGH_FREQUENCIES, threshold, freq_per_bin)
        if low is None or high is None:
            return None

        for protocol, pairs in self._dual:
            token = pairs.get((low, high))
            if token is not None:
                return token, protocol
        return None

    def _identify_single(self, frame, freq_per_bin):
        peak_freq = peak_position(frame) * freq_per_bin
        for protocol, tokens, freqs in self._single:
            distances = np.abs(freqs - peak_freq)
            best = int(np.argmin(distances))
            if distances[best] <= self.config.fsk_tolerance:
                return tokens[best], protocol
        logger.debug(f"Peak at {peak_freq:.1f} Hz matches no protocol")
        return None


# --- Framing ---

class PacketFramer:
    """START/STOP framing state machine. Every outcome goes through emit(text, status)."""

    def __init__(self, default_protocol: Protocol, emit: Callable[[str, MessageStatus], None],
                 clock: Callable[[], float], timeout: float):
        self.default_protocol = default_protocol
        self._emit = emit
        self._clock = clock
        self.timeout = timeout
        self.reset()

    def reset(self):
        self.state = FramingState.IDLE
        self.buffer = ''
        self.protocol = None
        self.last_token_time = None

    def _abandon(self, reason: str):
        if self.buffer:
            self._emit(f"[{reason}: {self.buffer}]", MessageStatus.ERROR)
        self.reset()

    def check_timeout(self):
        if self.state is not FramingState.RECEIVING or self.last_token_time is None:
            return
        if self._clock() - self.last_token_time > self.timeout:
            logger.warning(f"Message not completed within {self.timeout:g}s. Resetting. Buffer: \"{self.buffer}\"")
            self._abandon('timeout')

    def feed(self, token: str, protocol: Optional[Protocol] = None):
        logger.debug(f"Token decoded: '{token}'")
        self.last_token_time = self._clock()

        if token == START_TOKEN:
            if self.state is FramingState.RECEIVING and self.buffer:
                logger.warning(
                    f"Start signal received during an active session. "
                    f"Previous message discarded. Buffer: \"{self.buffer}\""
                )
                self._abandon('new-start')
                self.last_token_time = self._clock()
            self.state = FramingState.RECEIVING
            self.buffer = ''
            self.protocol = protocol or self.default_protocol
            logger.info(f"Start signal detected ({self.protocol.id}). Receiving.")
        elif token == STOP_TOKEN:
            if self.state is not FramingState.RECEIVING:
                logger.warning("Stop signal received outside a session. Ignoring.")
                return
            logger.info(f"Stop signal detected. Packet: \"{self.buffer}\"")
            if self.buffer:
                self._complete()
            else:
                logger.warning("Empty packet received. Ignoring.")
            self.reset()
        elif self.state is FramingState.RECEIVING:
            if token in self.protocol.tones:
                self.buffer += token
            else:
                logger.warning(f"Ignoring token '{token}' unknown to '{self.protocol.id}' during reception")

    def _complete(self):
        if self.protocol.custom_framing:
            digits = self.buffer
            if len(digits) % 2 != 0:
                logger.error(f"Decoding error: odd number of digits ({len(digits)}). Packet: \"{digits}\"")
                self._emit(ODD_DATA_TEXT, MessageStatus.ERROR)
                return
            self._emit(codec.decode_digits(digits), MessageStatus.SUCCESS)
            return

        payload, received = self.buffer[:-1], self.buffer[-1]
        expected = checksum(payload)
        text = self.protocol.restore(payload) if self.protocol.restore else payload
        if received == expected:
            self._emit(text, MessageStatus.SUCCESS)
        else:
            logger.warning(f"Checksum mismatch: expected '{expected}', got '{received}'")
            self._emit(text, MessageStatus.ERROR)


class Receiver:
    """
    Decodes messages from spectral frames.

    Args:
        protocols: Protocols accepted for recognition, in order of preference.
            Defaults to the standard protocol.
        config: Receiver tunables
        sample_rate: Rate of the audio the frames were computed from
        clock: Monotonic time source in seconds, used for session timeouts
        on_message: Called with every DecodedMessage as it is appended
    """

    def __init__(self, protocols: Optional[Sequence[Protocol]] = None,
                 config: Optional[ReceiverConfig] = None,
                 sample_rate: float = SAMPLE_RATE,
                 clock: Callable[[], float] = time.monotonic,
                 on_message: Optional[Callable[[DecodedMessage], None]] = None):
        self.protocols = list(protocols) if protocols else [get_protocol('standard')]
        self.config = config or ReceiverConfig()
        self.sample_rate = sample_rate
        self.on_message = on_message
        self.cooldown_frames = self.config.cooldown_frames or max(
            p.cooldown_frames for p in self.protocols
        )

        self._messages: List[DecodedMessage] = []
        self._noise = NoiseTracker(self.config)
        self._detector = ToneDetector(self.protocols, self.config)
        self._framer = PacketFramer(self.protocols[0], self._emit, clock, self.config.message_timeout)
        self.reset()

    # --- State ---

    @property
    def messages(self) -> Tuple[DecodedMessage, ...]:
        return tuple(self._messages)

    def clear_messages(self):
        self._messages = []
        logger.info("Decoded messages cleared.")

    @property
    def threshold(self) -> int:
        return self._noise.threshold

    @property
    def noise_level(self) -> float:
        return self._noise.noise_level

    @property
    def framing_state(self) -> FramingState:
        return self._framer.state

    @property
    def buffer(self) -> str:
        return self._framer.buffer

    def reset_session(self):
        """Drops any partial packet and re-arms tone detection. The noise estimate is kept."""
        self._framer.reset()
        self.tone_state = ToneState.IDLE
        self._quiet_frames = 0
        self._onset = None

    def reset(self):
        """Full reset for a new listening session."""
        self.reset_session()
        self._noise.reset()
        self.signal_quality = SignalQuality.NONE

    def _emit(self, text: str, status: MessageStatus):
        message = DecodedMessage(text=text, status=status, timestamp=datetime.now())
        self._messages.append(message)
        if message.ok:
            logger.info(f"Message decoded: \"{text}\"")
        else:
            logger.warning(f"Message error: \"{text}\"")
        if self.on_message:
            self.on_message(message)

    # --- Input ---

    def feed_token(self, token: str, protocol: Optional[Protocol] = None):
        """Drives the framing state machine directly, bypassing audio."""
        self._framer.feed(token, protocol)

    def process_frame(self, frame: np.ndarray) -> Optional[str]:
        """
        Runs one analysis step.

        Args:
            frame: Magnitude bytes (0..255), one per frequency bin

        Returns:
            The token detected in this frame, if any
        """
        frame = np.asarray(frame)
        if frame.ndim != 1 or len(frame) == 0:
            raise ValueError(f"Expected a non-empty 1-D frame, got shape {frame.shape}")

        self._framer.check_timeout()

        peak = int(frame.max())
        total = int(frame.sum(dtype=np.int64))
        threshold = self._noise.update(peak, total / len(frame))
        self.signal_quality = estimate_signal_quality(peak, total, threshold, len(frame))

        if self.tone_state is ToneState.IDLE:
            if peak <= threshold:
                self._onset = None
                return None
            # While a tone is still filling the analysis window its spectrum
            # is smeared. Keep the loudest frame and read it once the peak
            # stops rising.
            if self._onset is None or peak > self._onset[0]:
                self._onset = (peak, frame.copy())
                return None
            onset_frame = self._onset[1]
            self._onset = None
            match = self._detector.identify(onset_frame, threshold, self.sample_rate)
            if match is None:
                return None
            token, protocol = match
            self._framer.feed(token, protocol)
            self.tone_state = ToneState.COOLDOWN
            self._quiet_frames = 0
            return token

        # COOLDOWN: wait for the tone to die away. A stray loud frame only
        # takes one step back so echoes do not re-trigger the same tone.
        if peak < threshold:
            self._quiet_frames += 1
        else:
            self._quiet_frames = max(0, self._quiet_frames - 1)
        if self._quiet_frames >= self.cooldown_frames:
            self.tone_state = ToneState.IDLE
            self._quiet_frames = 0
        return None
