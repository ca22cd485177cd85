# codec.py
#
# Maps every supported character to a fixed-width two-digit code and back.
# Codes are assigned in alphabet order, so the order below is part of the
# wire format: reordering it breaks compatibility with existing senders.

import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Not alphabetical: д sits after р and ё after е so that "тест" encodes
# as 19041819 (а=00, е=04, к=10, о=14, с=18, т=19).
CYRILLIC = 'абвгеёжзийклмнопрдстуфхцчшщъыьэюя'
DIGITS = '0123456789'
PUNCTUATION = ' .,!?-'
LATIN = 'abcdefghijklmnopqrstuvwxyz'

ALPHABET = CYRILLIC + DIGITS + PUNCTUATION + LATIN
REPLACEMENT_CHAR = '�'
CODE_WIDTH = 2


def validate_alphabet(alphabet: str):
    """Raises ValueError unless every character is distinct and has a two-digit code."""
    repeated = sorted({char for char in alphabet if alphabet.count(char) > 1})
    if repeated:
        raise ValueError(f"Alphabet repeats characters: {''.join(repeated)!r}")
    if len(alphabet) > 10 ** CODE_WIDTH:
        raise ValueError(f"Alphabet of {len(alphabet)} symbols does not fit {CODE_WIDTH}-digit codes")


validate_alphabet(ALPHABET)

ENCODING_MAP = {char: str(index).zfill(CODE_WIDTH) for index, char in enumerate(ALPHABET)}
DECODING_MAP = {code: char for char, code in ENCODING_MAP.items()}


def is_supported(char: str) -> bool:
    return char.lower() in ENCODING_MAP


def encode_char(char: str) -> Optional[str]:
    """Returns the two-digit code for a character, or None if it is not supported."""
    return ENCODING_MAP.get(char.lower())


def decode_code(code: str) -> str:
    """Returns the character for a code. Unknown codes decode to REPLACEMENT_CHAR."""
    char = DECODING_MAP.get(code)
    if char is None:
        logger.warning(f"Unknown code '{code}', substituting replacement character")
        return REPLACEMENT_CHAR
    return char


def filter_supported(text: str) -> str:
    """Lower-cases text and drops every character outside the alphabet."""
    return ''.join(char for char in text.lower() if char in ENCODING_MAP)


def encode_text(text: str) -> str:
    """Encodes text as a digit string, e.g. "тест" -> "19041819"."""
    return ''.join(ENCODING_MAP[char] for char in filter_supported(text))


def decode_digits(digits: str) -> str:
    """
    Decodes a digit string two digits at a time. A dangling last digit
    decodes to REPLACEMENT_CHAR like any other unknown code.
    """
    if len(digits) % CODE_WIDTH != 0:
        logger.warning(f"Odd number of digits ({len(digits)}), last code is incomplete: {digits!r}")
    return ''.join(
        decode_code(digits[i:i + CODE_WIDTH]) for i in range(0, len(digits), CODE_WIDTH)
    )
