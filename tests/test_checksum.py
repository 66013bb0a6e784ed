"""Tests for the CRC16 helpers."""

import pytest

from w80x_flasher.protocol.checksum import crc16_ccitt, crc16_ccitt_false, crc16_xmodem

CHECK_INPUT = b"123456789"


def test_xmodem_check_value() -> None:
    """CRC16/XMODEM catalogue check value."""
    assert crc16_xmodem(CHECK_INPUT) == 0x31C3


def test_ccitt_false_check_value() -> None:
    """CRC16/CCITT-FALSE catalogue check value."""
    assert crc16_ccitt_false(CHECK_INPUT) == 0x29B1


def test_empty_input_returns_seed() -> None:
    """No data leaves the seed untouched."""
    assert crc16_ccitt_false(b"") == 0xFFFF
    assert crc16_xmodem(b"") == 0x0000


def test_offset_and_count_select_range() -> None:
    """Only data[offset:offset + count] is covered."""
    data = b"\xAA\xBB" + CHECK_INPUT + b"\xCC"
    assert crc16_ccitt(data, offset=2, count=len(CHECK_INPUT)) == 0x29B1
    assert crc16_ccitt(data, offset=2, count=len(CHECK_INPUT), init=0) == 0x31C3


def test_range_out_of_bounds_raises() -> None:
    """A range outside the buffer is a ValueError."""
    with pytest.raises(ValueError):
        crc16_ccitt(b"abc", offset=2, count=5)
    with pytest.raises(ValueError):
        crc16_ccitt(b"abc", offset=-1)
