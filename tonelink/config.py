# config.py
#
# Shared tunables for the tone modem. Everything the transmitter and the
# receiver must agree on lives here so both sides are built from the same
# numbers.

from dataclasses import dataclass
from typing import Optional

# --- Audio ---
SAMPLE_RATE = 44100        # Samples per second for rendering and capture
LEADING_SILENCE = 1.0      # Seconds of silence before the first tone in a WAV
DECAY_DURATION_MS = 10     # Exponential fade at the end of each tone
DECAY_FLOOR = 0.0001       # Gain reached at the very end of the fade
DEFAULT_VOLUME = 1.0

# --- Framing ---
START_TOKEN = '*'
STOP_TOKEN = '#'
START_FREQUENCY = 350.0    # Hz, FSK control tone for START
STOP_FREQUENCY = 400.0     # Hz, FSK control tone for STOP
CHECKSUM_CANDIDATES = '0123456789'

# --- Spectral analysis ---
FFT_SIZE = 2048            # Window size -> 1024 magnitude bins (~21.5 Hz each)
BLOCK_SIZE = 512           # Capture block, one analysis frame per block (~86 fps)
MIN_DECIBELS = -100.0      # Maps to byte 0
MAX_DECIBELS = 0.0         # Maps to byte 255
SMOOTHING = 0.0            # Time smoothing between frames (0 = none)

# --- Receiver (AGC) ---
INITIAL_DETECTION_THRESHOLD = 180  # Before AGC has seen any noise
MIN_DETECTION_THRESHOLD = 130      # The lowest the threshold can go
MAX_DETECTION_THRESHOLD = 230      # The highest the threshold can go
INITIAL_NOISE_LEVEL = 40.0
AGC_NOISE_SENSITIVITY = 0.02       # How fast the noise level adapts (lower is slower)
AGC_THRESHOLD_OFFSET = 30          # How far above the noise floor the threshold sits

# --- Receiver (recognition) ---
FSK_FREQUENCY_TOLERANCE = 40.0     # Wider, absorbs call codec shifts
DTMF_FREQUENCY_TOLERANCE = 20.0
DTMF_LOW_BAND = (650.0, 1000.0)
DTMF_HIGH_BAND = (1150.0, 1550.0)
MESSAGE_TIMEOUT = 5.0              # Seconds without a token before a session is dropped
LONG_PAUSE_MS = 100                # Protocols pausing at least this long debounce 3 frames


@dataclass(frozen=True)
class ReceiverConfig:
    """Tunables for one receiver instance."""
    initial_threshold: int = INITIAL_DETECTION_THRESHOLD
    min_threshold: int = MIN_DETECTION_THRESHOLD
    max_threshold: int = MAX_DETECTION_THRESHOLD
    initial_noise_level: float = INITIAL_NOISE_LEVEL
    noise_sensitivity: float = AGC_NOISE_SENSITIVITY
    threshold_offset: int = AGC_THRESHOLD_OFFSET
    fsk_tolerance: float = FSK_FREQUENCY_TOLERANCE
    dtmf_tolerance: float = DTMF_FREQUENCY_TOLERANCE
    message_timeout: float = MESSAGE_TIMEOUT
    # None derives the count from the accepted protocols' pauses
    cooldown_frames: Optional[int] = None

    def __post_init__(self):
        if not self.min_threshold <= self.initial_threshold <= self.max_threshold:
            raise ValueError(
                f"Initial threshold {self.initial_threshold} outside "
                f"[{self.min_threshold}, {self.max_threshold}]"
            )
        if not 0 < self.noise_sensitivity <= 1:
            raise ValueError(f"Noise sensitivity must be in (0, 1]: {self.noise_sensitivity}")
        if self.message_timeout <= 0:
            raise ValueError(f"Message timeout must be positive: {self.message_timeout}")
        if self.cooldown_frames is not None and self.cooldown_frames < 1:
            raise ValueError(f"Cooldown frames must be at least 1: {self.cooldown_frames}")
