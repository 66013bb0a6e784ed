"""
W80x opcode transactions.

Short command/response exchanges with the secboot ROM.

Frame format (multi-byte fields little-endian):
[ 0x21 | length | 0x00 | checksum (2) | opcode (4) | params... ]

``length`` counts the content (checksum + opcode + params), so the frame on
the wire is ``3 + length`` bytes. The checksum is CRC16/CCITT-FALSE over the
opcode and params only.

Transaction sequence:
1. Flush stale input, wait for the idle 'C'
2. Flush again, send the frame
3. Collect the reply (fixed length per opcode, may be zero)
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from w80x_flasher.config import FRAME_CHECKSUM_INIT
from w80x_flasher.errors import ProtocolViolation
from w80x_flasher.protocol.checksum import crc16_ccitt
from w80x_flasher.protocol.polling import Poller

logger = logging.getLogger(__name__)

FRAME_SIGN = 0x21
HEADER_SIZE = 3
CHECKSUM_SIZE = 2
OPCODE_FIELD_SIZE = 4

# Reply sizes
REPLY_STATUS_LEN = 1
REPLY_MAC_LEN = 18    # "MAC:0123456789AB\r\n"
REPLY_FLASH_LEN = 9   # "FID:00,00"
REPLY_ROM_LEN = 3     # "R:8"
REPLY_GAIN_LEN = 96   # "G:FFFF..."


class Opcode(Enum):
    """Secboot commands: (id, declared content length, reply length)."""

    SET_SPEED = (0x31, 0x0A, REPLY_STATUS_LEN)
    ERASE_FLASH = (0x32, 0x0A, REPLY_STATUS_LEN)
    SET_BT_MAC = (0x33, 0x0E, REPLY_STATUS_LEN)
    GET_BT_MAC = (0x34, 0x06, REPLY_MAC_LEN)
    SET_GAIN = (0x35, 0x5A, REPLY_STATUS_LEN)
    GET_GAIN = (0x36, 0x06, REPLY_GAIN_LEN)
    SET_WIFI_MAC = (0x37, 0x0E, REPLY_STATUS_LEN)
    GET_WIFI_MAC = (0x38, 0x06, REPLY_MAC_LEN)
    GET_ERROR = (0x3B, 0x06, REPLY_STATUS_LEN)
    GET_FLASH_ID = (0x3C, 0x06, REPLY_FLASH_LEN)
    GET_ROM_VERSION = (0x3E, 0x06, REPLY_ROM_LEN)
    REBOOT = (0x3F, 0x06, 0)

    def __init__(self, code: int, length: int, reply_length: int):
        self.code = code
        self.length = length
        self.reply_length = reply_length

    @property
    def param_length(self) -> int:
        """Parameter bytes carried after the opcode field."""
        return self.length - CHECKSUM_SIZE - OPCODE_FIELD_SIZE

    @property
    def frame_size(self) -> int:
        """Total bytes on the wire."""
        return HEADER_SIZE + self.length

    @classmethod
    def from_code(cls, code: int) -> "Opcode":
        for opcode in cls:
            if opcode.code == code:
                return opcode
        raise ValueError(f"Unknown opcode 0x{code:02X}")


@dataclass(frozen=True)
class TransactionFrame:
    """Decoded opcode frame."""

    opcode: int
    params: bytes
    length: int
    checksum: int


def frame_checksum(content: bytes, init: int = FRAME_CHECKSUM_INIT) -> int:
    """CRC over the opcode + params region."""
    return crc16_ccitt(content, init=init)


def build_frame(
    opcode: Opcode,
    params: Optional[bytes] = None,
    checksum_init: int = FRAME_CHECKSUM_INIT,
) -> bytes:
    """
    Encode an opcode frame.

    Args:
        opcode: Command to send
        params: Parameter block, exactly ``opcode.param_length`` bytes
        checksum_init: CRC16 seed

    Returns:
        Complete frame as bytes

    Raises:
        ValueError: If the parameter block has the wrong size
    """
    params = bytes(params or b"")
    if len(params) != opcode.param_length:
        raise ValueError(
            f"{opcode.name} takes {opcode.param_length} parameter bytes, got {len(params)}"
        )

    content = struct.pack("<I", opcode.code) + params
    checksum = frame_checksum(content, checksum_init)
    frame = struct.pack("<BBBH", FRAME_SIGN, opcode.length, 0x00, checksum) + content

    assert len(frame) == opcode.frame_size
    return frame


def decode_frame(data: bytes, checksum_init: int = FRAME_CHECKSUM_INIT) -> TransactionFrame:
    """
    Decode and validate an opcode frame.

    Raises:
        ProtocolViolation: On bad sign, length or checksum
    """
    if len(data) < HEADER_SIZE + CHECKSUM_SIZE + OPCODE_FIELD_SIZE:
        raise ProtocolViolation(f"Frame too short: {data.hex() if data else 'empty'}")

    sign, length, reserved, checksum = struct.unpack_from("<BBBH", data)
    if sign != FRAME_SIGN:
        raise ProtocolViolation(f"Bad frame sign 0x{sign:02X}")
    if reserved != 0:
        raise ProtocolViolation(f"Reserved header byte is 0x{reserved:02X}")
    if len(data) != HEADER_SIZE + length:
        raise ProtocolViolation(
            f"Frame length mismatch: declared {length}, got {len(data) - HEADER_SIZE}"
        )

    content = data[HEADER_SIZE + CHECKSUM_SIZE:]
    expected = frame_checksum(content, checksum_init)
    if expected != checksum:
        raise ProtocolViolation(
            f"Frame checksum mismatch: got 0x{checksum:04X}, want 0x{expected:04X}"
        )

    (code,) = struct.unpack_from("<I", content)
    return TransactionFrame(
        opcode=code,
        params=bytes(content[OPCODE_FIELD_SIZE:]),
        length=length,
        checksum=checksum,
    )


class OpcodeEngine:
    """
    Issues opcode transactions over the shared transport.

    No retries happen here: a failed transaction must be re-issued by the
    caller.
    """

    def __init__(
        self,
        transport,
        poller: Optional[Poller] = None,
        checksum_init: int = FRAME_CHECKSUM_INIT,
    ):
        self.transport = transport
        self.poller = poller or Poller(transport)
        self.checksum_init = checksum_init

    def transact(self, opcode: Opcode, params: Optional[bytes] = None) -> bytes:
        """
        Send one command and collect its reply.

        Args:
            opcode: Command to send
            params: Parameter block (``None`` for commands without one)

        Returns:
            Reply bytes (``opcode.reply_length`` long, empty for reboot)

        Raises:
            ValueError: Parameter block has the wrong size (before any I/O)
            ChannelBusy: Chip never reported idle
            ReplyTimeout: Reply did not complete
            TransportError: Serial I/O failed
        """
        frame = build_frame(opcode, params, self.checksum_init)

        self.transport.flush_input()
        self.poller.wait_busy()

        logger.debug(f"{opcode.name} frame: {frame.hex()}")
        self.transport.flush_input()
        self.transport.write(frame)

        if opcode.reply_length <= 0:
            return b""

        reply = self.poller.wait_read(opcode.reply_length)
        logger.debug(f"{opcode.name} reply: {reply.hex()}")
        return reply
