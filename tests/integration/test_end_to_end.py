import numpy as np
import pytest

from tonelink.codec import ALPHABET
from tonelink.config import SAMPLE_RATE
from tonelink.listener import decode_samples, decode_wav
from tonelink.protocols import PROTOCOLS, CustomToneConfig, build_custom_protocol, get_protocol
from tonelink.receiver import MessageStatus
from tonelink.transmitter import render_to_buffer, render_wav


def texts(messages):
    return [(m.text, m.status) for m in messages]


def supported_text(text, protocol):
    return ''.join(char for char in text if protocol.supports(char))


class TestEndToEndTransmission:
    """Integration tests: render tones, analyse them, decode the text."""

    @pytest.mark.parametrize("protocol_id, message", [
        ('standard', "тест"),
        ('fast', "привет мир 123"),
        ('reliable', "привет"),
        ('quiet', "hello, world!"),
        ('dtmf_text', "тест"),
        ('custom', "ok 42"),
    ])
    def test_round_trip(self, protocol_id, message):
        """Test that each protocol decodes its own rendering."""
        protocol = get_protocol(protocol_id)
        audio = render_to_buffer(message, 1.0, protocol)
        messages = decode_samples(audio, SAMPLE_RATE, [protocol])
        assert texts(messages) == [(message, MessageStatus.SUCCESS)]

    @pytest.mark.parametrize("protocol_id", sorted(PROTOCOLS))
    def test_whole_alphabet(self, protocol_id):
        """Test that every character a protocol can send comes back unchanged."""
        protocol = get_protocol(protocol_id)
        message = supported_text(ALPHABET, protocol)
        audio = render_to_buffer(message, 1.0, protocol)
        assert texts(decode_samples(audio, SAMPLE_RATE, [protocol])) == [(message, MessageStatus.SUCCESS)]

    @pytest.mark.parametrize("protocol_id", sorted(PROTOCOLS))
    def test_repeated_characters(self, protocol_id):
        """Test that runs of one character are neither merged nor split."""
        protocol = get_protocol(protocol_id)
        message = supported_text("еее ?? 111 zz", protocol)
        audio = render_to_buffer(message, 1.0, protocol)
        assert texts(decode_samples(audio, SAMPLE_RATE, [protocol])) == [(message, MessageStatus.SUCCESS)]

    def test_dtmf_digits(self):
        """Test plain DTMF with checksum framing."""
        protocol = get_protocol('dtmf')
        audio = render_to_buffer("0123456789", 1.0, protocol)
        assert texts(decode_samples(audio, SAMPLE_RATE, [protocol])) == [("0123456789", MessageStatus.SUCCESS)]

    def test_unsupported_characters_dropped(self):
        """Test that characters outside the alphabet never reach the receiver."""
        protocol = get_protocol('standard')
        audio = render_to_buffer("Тест@", 1.0, protocol)
        assert texts(decode_samples(audio, SAMPLE_RATE, [protocol])) == [("тест", MessageStatus.SUCCESS)]

    def test_reduced_volume(self):
        """Test decoding a transmission at half volume."""
        protocol = get_protocol('standard')
        audio = render_to_buffer("тест", 0.5, protocol)
        assert texts(decode_samples(audio, SAMPLE_RATE, [protocol])) == [("тест", MessageStatus.SUCCESS)]

    def test_with_background_noise(self):
        """Test decoding with white noise under the tones."""
        protocol = get_protocol('standard')
        audio = render_to_buffer("тест", 1.0, protocol)
        rng = np.random.default_rng(1234)
        noisy = audio + rng.normal(0, 0.01, len(audio)).astype(np.float32)
        assert texts(decode_samples(noisy, SAMPLE_RATE, [protocol])) == [("тест", MessageStatus.SUCCESS)]

    def test_receiver_accepting_several_protocols(self):
        """Test that a receiver listening for FSK and DTMF decodes both."""
        protocols = [get_protocol('standard'), get_protocol('dtmf_text')]
        gap = np.zeros(SAMPLE_RATE, dtype=np.float32)
        audio = np.concatenate([
            render_to_buffer("да", 1.0, get_protocol('standard')),
            gap,
            render_to_buffer("нет", 1.0, get_protocol('dtmf_text')),
        ])
        assert texts(decode_samples(audio, SAMPLE_RATE, protocols)) == [
            ("да", MessageStatus.SUCCESS),
            ("нет", MessageStatus.SUCCESS),
        ]

    def test_mismatched_custom_tables_decode_nothing(self):
        """Test that a receiver built from another custom table hears only noise."""
        sender = build_custom_protocol(CustomToneConfig(base_frequency=1000.0, step=50.0))
        listener = build_custom_protocol(CustomToneConfig(base_frequency=5000.0, step=50.0))
        audio = render_to_buffer("тест", 1.0, sender)
        messages = decode_samples(audio, SAMPLE_RATE, [listener])
        assert all(m.status is MessageStatus.ERROR for m in messages)
        assert "тест" not in [m.text for m in messages]

    def test_truncated_recording(self):
        """Test that a recording cut before STOP yields no message."""
        protocol = get_protocol('standard')
        audio = render_to_buffer("тест", 1.0, protocol)
        assert decode_samples(audio[:int(SAMPLE_RATE * 1.7)], SAMPLE_RATE, [protocol]) == []

    def test_stalled_transmission_times_out(self):
        """Test that six seconds of silence mid-message abandons the packet."""
        protocol = get_protocol('dtmf_text')
        audio = render_to_buffer("тест", 1.0, protocol)
        cut = SAMPLE_RATE + int(SAMPLE_RATE * 0.2 * 3)
        stalled = np.concatenate([audio[:cut], np.zeros(SAMPLE_RATE * 6, dtype=np.float32)])
        assert texts(decode_samples(stalled, SAMPLE_RATE, [protocol])) == [("[timeout: 19]", MessageStatus.ERROR)]


class TestWavRoundTrip:
    """Integration tests through WAV files."""

    def test_wav_file(self, tmp_path):
        """Test writing a WAV and decoding the file."""
        protocol = get_protocol('dtmf_text')
        path = tmp_path / "message.wav"
        path.write_bytes(render_wav("тест 123", 1.0, protocol))

        assert texts(decode_wav(path, [protocol])) == [("тест 123", MessageStatus.SUCCESS)]

    def test_wav_bytes_at_other_rate(self):
        """Test a rendering at 48 kHz."""
        protocol = get_protocol('standard')
        data = render_wav("ok", 1.0, protocol, sample_rate=48000)
        assert texts(decode_wav(data, [protocol])) == [("ok", MessageStatus.SUCCESS)]
