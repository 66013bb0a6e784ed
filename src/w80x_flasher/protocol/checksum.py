"""
CRC16 helpers for the W80x secboot protocols.

Both checksums use the CCITT polynomial 0x1021, MSB first, no reflection and
no final XOR. They differ only in the seed:

- CRC16/CCITT-FALSE (seed 0xFFFF) protects opcode transaction frames.
- CRC16/XMODEM (seed 0x0000) protects bulk transfer packets.
"""

from typing import Optional

CRC16_POLY = 0x1021
CCITT_FALSE_INIT = 0xFFFF
XMODEM_INIT = 0x0000


def crc16_ccitt(
    data: bytes,
    offset: int = 0,
    count: Optional[int] = None,
    *,
    poly: int = CRC16_POLY,
    init: int = CCITT_FALSE_INIT,
) -> int:
    """
    Compute a non-reflected CRC16 over ``data[offset:offset + count]``.

    Args:
        data: Buffer to checksum
        offset: First byte of the covered range
        count: Number of bytes covered (default: to the end of ``data``)
        poly: Generator polynomial
        init: Seed value

    Returns:
        16-bit CRC value

    Raises:
        ValueError: If the range does not fit inside ``data``
    """
    if offset < 0:
        raise ValueError("offset must be >= 0")
    if count is None:
        count = len(data) - offset
    if count < 0 or offset + count > len(data):
        raise ValueError("crc range out of bounds")

    crc = init & 0xFFFF
    for byte in data[offset:offset + count]:
        crc ^= (byte & 0xFF) << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ poly) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def crc16_ccitt_false(data: bytes) -> int:
    """CRC16/CCITT-FALSE (seed 0xFFFF), used for opcode frames."""
    return crc16_ccitt(data, init=CCITT_FALSE_INIT)


def crc16_xmodem(data: bytes) -> int:
    """CRC16/XMODEM (seed 0x0000), used for bulk transfer packets."""
    return crc16_ccitt(data, init=XMODEM_INIT)
