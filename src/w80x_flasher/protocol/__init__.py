"""W80x secboot protocol layer - transport, opcode frames and bulk transfer."""

from .w80x_transport import W80xTransport
from .checksum import crc16_ccitt, crc16_ccitt_false, crc16_xmodem
from .status import StatusCode, status_name, is_complete
from .polling import Poller
from .opcode import (
    Opcode,
    OpcodeEngine,
    TransactionFrame,
    build_frame,
    decode_frame,
)
from .xmodem import (
    XmodemSender,
    TransferSession,
    build_packet,
    parse_packet,
    chunk_image,
    PAYLOAD_SIZE,
    PACKET_SIZE,
)
from .secboot import SecbootEntry
from .w80x_protocol import W80xProtocol, ChipInfo

__all__ = [
    # Transport
    "W80xTransport",
    # Checksums / status
    "crc16_ccitt",
    "crc16_ccitt_false",
    "crc16_xmodem",
    "StatusCode",
    "status_name",
    "is_complete",
    # Engines
    "Poller",
    "Opcode",
    "OpcodeEngine",
    "TransactionFrame",
    "build_frame",
    "decode_frame",
    "XmodemSender",
    "TransferSession",
    "build_packet",
    "parse_packet",
    "chunk_image",
    "PAYLOAD_SIZE",
    "PACKET_SIZE",
    "SecbootEntry",
    # Operations
    "W80xProtocol",
    "ChipInfo",
]
