# protocols.py
#
# The tone protocol table. A protocol fixes how long each tone lasts, how
# long the gap after it is, which tone (a single frequency or a DTMF pair)
# stands for each token, and optionally how the payload is rewritten before
# it goes on the wire.

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

from . import codec
from .config import (
    SAMPLE_RATE, START_TOKEN, STOP_TOKEN, START_FREQUENCY, STOP_FREQUENCY,
    CHECKSUM_CANDIDATES, FSK_FREQUENCY_TOLERANCE, LONG_PAUSE_MS,
)
from .errors import ProtocolConfigError, UnknownProtocolError

CONTROL_TOKENS = (START_TOKEN, STOP_TOKEN)


@dataclass(frozen=True)
class SingleTone:
    """One sine tone per token (FSK)."""
    frequency: float

    @property
    def frequencies(self) -> Tuple[float, ...]:
        return (self.frequency,)


@dataclass(frozen=True)
class DualTone:
    """A low-group and a high-group tone sounded together (DTMF)."""
    low: float
    high: float

    @property
    def frequencies(self) -> Tuple[float, ...]:
        return (self.low, self.high)


Tone = Union[SingleTone, DualTone]

# --- DTMF grid ---
DTMF_LOW_FREQUENCIES = (697.0, 770.0, 852.0, 941.0)
DTMF_HIGH_FREQUENCIES = (1209.0, 1336.0, 1477.0)
DTMF_KEYS = ('123', '456', '789', '*0#')

DTMF_TONES: Dict[str, Tone] = {
    key: DualTone(low, high)
    for row, low in zip(DTMF_KEYS, DTMF_LOW_FREQUENCIES)
    for key, high in zip(row, DTMF_HIGH_FREQUENCIES)
}

# --- FSK ---
FSK_BASE_FREQUENCY = 450.0
FSK_FREQUENCY_STEP = 40.0


def fsk_tones(base_frequency: float, step: float, alphabet: str = codec.ALPHABET) -> Dict[str, Tone]:
    """One frequency per alphabet index, plus the shared START/STOP control tones."""
    tones: Dict[str, Tone] = {
        char: SingleTone(base_frequency + index * step) for index, char in enumerate(alphabet)
    }
    tones[START_TOKEN] = SingleTone(START_FREQUENCY)
    tones[STOP_TOKEN] = SingleTone(STOP_FREQUENCY)
    return tones


@dataclass(frozen=True)
class Protocol:
    """
    An immutable tone protocol.

    Protocols with custom_framing produce the complete token sequence,
    START and STOP included, from their transform. All others have the
    transmitter wrap the payload as START + payload + checksum + STOP.
    """
    id: str
    name: str
    description: str
    tone_ms: int
    pause_ms: int
    tones: Mapping[str, Tone]
    transform: Optional[Callable[[str], str]] = None
    restore: Optional[Callable[[str], str]] = None
    custom_framing: bool = False
    gain: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, 'tones', MappingProxyType(dict(self.tones)))
        self._validate()

    def _validate(self):
        if not isinstance(self.tone_ms, int) or self.tone_ms <= 0:
            raise ProtocolConfigError(f"{self.id}: tone duration must be a positive integer: {self.tone_ms}")
        if not isinstance(self.pause_ms, int) or self.pause_ms < 0:
            raise ProtocolConfigError(f"{self.id}: pause duration must be a non-negative integer: {self.pause_ms}")
        if not 0 < self.gain <= 1:
            raise ProtocolConfigError(f"{self.id}: gain must be in (0, 1]: {self.gain}")
        if not self.tones:
            raise ProtocolConfigError(f"{self.id}: empty tone map")
        if self.custom_framing and self.transform is None:
            raise ProtocolConfigError(f"{self.id}: custom framing needs a transform")

        seen = {}
        nyquist = SAMPLE_RATE / 2
        for token, tone in self.tones.items():
            if len(token) != 1:
                raise ProtocolConfigError(f"{self.id}: tokens are single characters: {token!r}")
            if tone.frequencies in seen:
                raise ProtocolConfigError(
                    f"{self.id}: '{token}' and '{seen[tone.frequencies]}' share tone {tone.frequencies}"
                )
            seen[tone.frequencies] = token
            for freq in tone.frequencies:
                if not 0 < freq < nyquist:
                    raise ProtocolConfigError(f"{self.id}: '{token}' frequency {freq} Hz out of range")
            if isinstance(tone, DualTone):
                if tone.low not in DTMF_LOW_FREQUENCIES or tone.high not in DTMF_HIGH_FREQUENCIES:
                    raise ProtocolConfigError(f"{self.id}: '{token}' pair {tone.frequencies} is not on the DTMF grid")
            elif token not in CONTROL_TOKENS:
                for control in (START_FREQUENCY, STOP_FREQUENCY):
                    if abs(tone.frequency - control) <= FSK_FREQUENCY_TOLERANCE:
                        raise ProtocolConfigError(
                            f"{self.id}: '{token}' at {tone.frequency} Hz collides with control tone {control} Hz"
                        )

        if not self.custom_framing:
            missing = [t for t in CONTROL_TOKENS + tuple(CHECKSUM_CANDIDATES) if t not in self.tones]
            if missing:
                raise ProtocolConfigError(f"{self.id}: framing tokens missing from tone map: {''.join(missing)}")

    @property
    def is_dual_tone(self) -> bool:
        return all(isinstance(tone, DualTone) for tone in self.tones.values())

    @property
    def cooldown_frames(self) -> int:
        """Quiet frames the receiver waits for before accepting the next tone."""
        return 3 if self.pause_ms >= LONG_PAUSE_MS else 2

    def supports(self, char: str) -> bool:
        if self.custom_framing:
            return codec.is_supported(char)
        return char in self.tones and char not in CONTROL_TOKENS

    def tone_for(self, token: str) -> Optional[Tone]:
        return self.tones.get(token)


@dataclass(frozen=True)
class CustomToneConfig:
    """
    Base frequency and step for the user-tuned FSK protocol.

    Sender and receiver must be built from equal configs; a mismatch makes
    every tone miss the table and the receiver treats it as noise.
    """
    base_frequency: float = 1000.0
    step: float = 50.0
    alphabet: str = field(default=codec.ALPHABET)

    def __post_init__(self):
        if self.base_frequency <= 0:
            raise ProtocolConfigError(f"Base frequency must be positive: {self.base_frequency}")
        if self.step <= 0:
            raise ProtocolConfigError(f"Frequency step must be positive: {self.step}")
        if not self.alphabet:
            raise ProtocolConfigError("Custom alphabet is empty")

    @property
    def top_frequency(self) -> float:
        return self.base_frequency + (len(self.alphabet) - 1) * self.step


def build_custom_protocol(config: CustomToneConfig = CustomToneConfig()) -> Protocol:
    return Protocol(
        id='custom',
        name='Custom',
        description=f'FSK from {config.base_frequency:g} Hz in {config.step:g} Hz steps.',
        tone_ms=100,
        pause_ms=100,
        tones=fsk_tones(config.base_frequency, config.step, config.alphabet),
    )


# --- Transforms ---

def double_chars(message: str) -> str:
    """Sends every character twice, "ab" -> "aabb"."""
    return ''.join(char * 2 for char in message)


def undouble_chars(payload: str) -> str:
    """Inverse of double_chars. A disagreeing pair decodes to the replacement character."""
    chars = []
    for i in range(0, len(payload), 2):
        pair = payload[i:i + 2]
        if len(pair) == 2 and pair[0] != pair[1]:
            chars.append(codec.REPLACEMENT_CHAR)
        else:
            chars.append(pair[0])
    return ''.join(chars)


def text_to_dtmf_packet(message: str) -> str:
    """
    Encodes text as digit pairs and wraps them in DTMF start/stop keys.
    e.g., "привет" -> "*151608020419#"
    """
    return f"{START_TOKEN}{codec.encode_text(message)}{STOP_TOKEN}"


_FSK_TONES = fsk_tones(FSK_BASE_FREQUENCY, FSK_FREQUENCY_STEP)

PROTOCOLS: Dict[str, Protocol] = {
    protocol.id: protocol for protocol in (
        Protocol(
            id='standard',
            name='Standard',
            description='Balanced speed and reliability for most calls.',
            tone_ms=100,
            pause_ms=100,
            tones=_FSK_TONES,
        ),
        Protocol(
            id='fast',
            name='Fast',
            description='Short tones for clean, quiet links.',
            tone_ms=60,
            pause_ms=60,
            tones=_FSK_TONES,
        ),
        Protocol(
            id='reliable',
            name='Reliable',
            description='Long tones and every character sent twice.',
            tone_ms=150,
            pause_ms=120,
            tones=_FSK_TONES,
            transform=double_chars,
            restore=undouble_chars,
        ),
        Protocol(
            id='quiet',
            name='Quiet',
            description='Reduced output level for short-range links.',
            tone_ms=150,
            pause_ms=100,
            tones=_FSK_TONES,
            gain=0.35,
        ),
        Protocol(
            id='dtmf',
            name='DTMF',
            description='Digits only, standard touch-tone pairs.',
            tone_ms=100,
            pause_ms=100,
            tones=DTMF_TONES,
        ),
        Protocol(
            id='dtmf_text',
            name='DTMF text',
            description='Text carried as digit pairs over touch tones.',
            tone_ms=100,
            pause_ms=100,
            tones=DTMF_TONES,
            transform=text_to_dtmf_packet,
            custom_framing=True,
        ),
        build_custom_protocol(),
    )
}


def get_protocol(protocol_id: str) -> Protocol:
    try:
        return PROTOCOLS[protocol_id]
    except KeyError:
        raise UnknownProtocolError(protocol_id) from None
