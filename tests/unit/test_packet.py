from tonelink.config import CHECKSUM_CANDIDATES
from tonelink.packet import build_packet, checksum, prepare_payload
from tonelink.protocols import get_protocol


class TestChecksum:
    """Test cases for the single-character checksum."""

    def test_empty_message(self):
        """Test the checksum of nothing."""
        assert checksum("") == '0'

    def test_known_value(self):
        """Test the XOR of the code points of "тест" modulo 10."""
        assert checksum("тест") == '6'

    def test_deterministic(self):
        """Test that the same message always gives the same character."""
        assert checksum("hello world") == checksum("hello world")

    def test_always_a_candidate(self):
        """Test that the result is always one of the checksum digits."""
        for message in ["a", "zz", "привет", "12345", "?!-., "]:
            assert checksum(message) in CHECKSUM_CANDIDATES

    def test_single_character_change_detected(self):
        """Test that changing one character changes the checksum."""
        assert checksum("тест") != checksum("тост")


class TestPacket:
    """Test cases for packet assembly."""

    def test_standard_packet(self):
        """Test START + payload + checksum + STOP framing."""
        packet = build_packet("тест", get_protocol('standard'))
        assert packet == ['*', 'т', 'е', 'с', 'т', '6', '#']

    def test_reliable_packet_doubles_payload(self):
        """Test that the checksum covers the doubled payload."""
        packet = build_packet("ab", get_protocol('reliable'))
        assert packet == ['*', 'a', 'a', 'b', 'b', checksum("aabb"), '#']

    def test_dtmf_text_packet(self):
        """Test that custom framing uses the transform output as is."""
        packet = build_packet("тест", get_protocol('dtmf_text'))
        assert ''.join(packet) == "*19041819#"

    def test_prepare_payload_filters_per_protocol(self):
        """Test that each protocol keeps only what it can send."""
        assert prepare_payload("Тест 12!", get_protocol('standard')) == "тест 12!"
        assert prepare_payload("Тест 12!", get_protocol('dtmf')) == "12"
        assert prepare_payload("Тест 12!", get_protocol('dtmf_text')) == "тест 12!"

    def test_prepare_payload_drops_control_tokens(self):
        """Test that START and STOP cannot be smuggled into a payload."""
        assert prepare_payload("1*2#3", get_protocol('dtmf')) == "123"
