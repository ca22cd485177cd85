"""Text over audible tones: FSK and DTMF encoding, live and offline decoding."""

from .codec import ALPHABET, decode_digits, encode_text
from .config import ReceiverConfig
from .errors import CaptureDeviceError, ProtocolConfigError, ToneLinkError, UnknownProtocolError
from .listener import Listener, decode_samples, decode_wav
from .packet import build_packet, checksum
from .protocols import PROTOCOLS, CustomToneConfig, Protocol, build_custom_protocol, get_protocol
from .quality import SignalQuality, estimate_signal_quality
from .receiver import DecodedMessage, MessageStatus, Receiver
from .spectrum import SpectrumAnalyser
from .transmitter import ProgressEvent, render_to_buffer, render_wav, transmission_events, transmit
from .wav import read_wav, to_wav_bytes, write_wav

__version__ = '0.1.0'
