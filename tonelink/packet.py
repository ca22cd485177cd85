# packet.py
#
# Checksum and packet assembly shared by the transmitter and the receiver.

import logging
from typing import List

from .config import START_TOKEN, STOP_TOKEN, CHECKSUM_CANDIDATES
from .protocols import Protocol

logger = logging.getLogger(__name__)


def checksum(message: str) -> str:
    """
    Single-character XOR checksum over the message's code points.

    This detects most corruption but is no CRC: distinct messages can share
    a checksum and nothing is corrected.
    """
    if not message:
        return CHECKSUM_CANDIDATES[0]
    acc = 0
    for char in message:
        acc ^= ord(char)
    return CHECKSUM_CANDIDATES[acc % len(CHECKSUM_CANDIDATES)]


def prepare_payload(message: str, protocol: Protocol) -> str:
    """Lower-cases the message and drops every character the protocol cannot send."""
    return ''.join(char for char in message.lower() if protocol.supports(char))


def build_packet(payload: str, protocol: Protocol) -> List[str]:
    """Turns a filtered payload into the token sequence placed on the wire."""
    if protocol.custom_framing:
        full_packet = protocol.transform(payload)
        logger.info(f"Full packet (custom framing): {full_packet}")
        return list(full_packet)

    wire_payload = protocol.transform(payload) if protocol.transform else payload
    check = checksum(wire_payload)
    logger.info(f"Full packet: [START]{wire_payload}[{check}][STOP]")
    return [START_TOKEN, *wire_payload, check, STOP_TOKEN]
