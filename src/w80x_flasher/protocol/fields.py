"""
Parameter blocks and reply decoding for secboot commands.

Every user supplied value is checked here before it is turned into bytes, so a
malformed value raises ValidationError without touching the serial line.
"""

import re
import struct

from w80x_flasher.errors import ValidationError

MAC_STRING_LEN = 17
MAC_COLON_POSITIONS = (2, 5, 8, 11, 14)
MAC_LEN = 6
MAC_PARAM_LEN = 8

GAIN_LEN = 84
GAIN_STRING_LEN = GAIN_LEN * 2

ERASE_BLOCK_SIZE = 4096
ERASE_INDEX_MAX = 0x7FFF
ERASE_COUNT_MAX = 0xFFFF

_HEX_RE = re.compile(r"^[0-9A-Fa-f]*$")


def validate_mac(mac: str) -> str:
    """
    Check the ``XX:XX:XX:XX:XX:XX`` shape.

    Raises:
        ValidationError: Wrong length, misplaced colons or non-hex digits
    """
    if len(mac) != MAC_STRING_LEN:
        raise ValidationError(f"MAC '{mac}' must be {MAC_STRING_LEN} characters (XX:XX:XX:XX:XX:XX)")
    for pos in MAC_COLON_POSITIONS:
        if mac[pos] != ":":
            raise ValidationError(f"MAC '{mac}' needs ':' at position {pos}")
    digits = mac.replace(":", "")
    if len(digits) != MAC_LEN * 2 or not _HEX_RE.match(digits):
        raise ValidationError(f"MAC '{mac}' contains non-hex digits")
    return mac


def parse_mac(mac: str) -> bytes:
    """Convert a colon separated MAC string to 6 raw bytes."""
    validate_mac(mac)
    return bytes.fromhex(mac.replace(":", ""))


def encode_mac_param(mac: str) -> bytes:
    """MAC parameter block: 6 address bytes plus 2 zero bytes."""
    return parse_mac(mac) + bytes(MAC_PARAM_LEN - MAC_LEN)


def validate_gain(gain: str) -> str:
    """
    Check a 168 hex character RF gain string.

    Raises:
        ValidationError: Wrong length or non-hex digits
    """
    if len(gain) != GAIN_STRING_LEN:
        raise ValidationError(
            f"Gain must be {GAIN_STRING_LEN} hex characters, got {len(gain)}"
        )
    if not _HEX_RE.match(gain):
        raise ValidationError("Gain contains non-hex characters")
    return gain


def encode_gain_param(gain: str) -> bytes:
    """Gain parameter block: 84 raw bytes."""
    validate_gain(gain)
    return bytes.fromhex(gain)


def encode_speed_param(speed: int) -> bytes:
    """Speed parameter block: little-endian u32 baud rate."""
    if not 0 < speed <= 0xFFFFFFFF:
        raise ValidationError(f"Invalid serial speed {speed}")
    return struct.pack("<I", speed)


def erase_block_count(size: int) -> int:
    """Number of 4 KiB blocks covering ``size`` bytes (ceiling divide)."""
    return (size + ERASE_BLOCK_SIZE - 1) // ERASE_BLOCK_SIZE


def encode_erase_param(index: int, size: int) -> bytes:
    """
    Erase parameter block: le16 start index, le16 block count.

    Raises:
        ValidationError: Index over 15 bits, non-positive size or too many blocks
    """
    if not 0 <= index <= ERASE_INDEX_MAX:
        raise ValidationError(f"Erase offset {index} out of range (0..0x{ERASE_INDEX_MAX:X})")
    if size <= 0:
        raise ValidationError(f"Erase size must be positive, got {size}")
    count = erase_block_count(size)
    if count > ERASE_COUNT_MAX:
        raise ValidationError(f"Erase size {size} exceeds {ERASE_COUNT_MAX} blocks")
    return struct.pack("<HH", index, count)


def decode_text_reply(reply: bytes) -> str:
    """Decode an ASCII reply with CR, LF and NUL removed."""
    text = reply.decode("ascii", errors="replace")
    return text.replace("\x00", "").strip("\r\n ")


def format_mac_reply(reply: bytes) -> str:
    """
    Turn a "MAC:0123456789AB" reply into "01:23:45:67:89:ab".

    Falls back to the decoded text if the reply is not in that shape.
    """
    text = decode_text_reply(reply)
    digits = text[4:16]
    if not text[:4].upper() == "MAC:" or len(digits) != 12 or not _HEX_RE.match(digits):
        return text
    digits = digits.lower()
    return ":".join(digits[i:i + 2] for i in range(0, 12, 2))
