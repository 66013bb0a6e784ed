"""
XMODEM-1K style bulk transfer used to stream firmware into SPI flash.

Packet format (1029 bytes):
[ SOH (0x02) | seq | ~seq | payload (1024, padded with 0x1A) | CRC16/XMODEM (2, big-endian) ]

Sequence numbers start at 1 and wrap modulo 256. Each packet is answered with
one byte: ACK advances, NAK resends the identical packet, CAN aborts. After the
last packet the host sends EOT and expects ACK.
"""

import logging
import struct
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from w80x_flasher.config import MAX_RETRIES
from w80x_flasher.errors import (
    ProtocolViolation,
    RemoteCancelled,
    ReplyTimeout,
    RetryExhausted,
    TransferIncomplete,
    W80xError,
)
from w80x_flasher.protocol.checksum import crc16_xmodem
from w80x_flasher.protocol.polling import Poller
from w80x_flasher.protocol.status import STATUS_MESSAGES, status_name

logger = logging.getLogger(__name__)

SOH = 0x02
EOT = 0x04
ACK = 0x06
NAK = 0x15
CAN = 0x18

PAYLOAD_SIZE = 1024
PAD_BYTE = 0x1A
PACKET_SIZE = 3 + PAYLOAD_SIZE + 2

ProgressCallback = Callable[[int, int], None]


@dataclass
class TransferSession:
    """
    Counters for one bulk transfer.

    Attributes:
        total: Image size in bytes
        done: Image bytes acknowledged so far (padding excluded)
        packets: Packets acknowledged so far
        retries: NAKs received across the whole transfer
        started: Monotonic start timestamp
        finished: Monotonic end timestamp (set on success)
    """
    total: int
    done: int = 0
    packets: int = 0
    retries: int = 0
    started: float = field(default_factory=time.monotonic)
    finished: Optional[float] = None

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.done * 100.0 / self.total

    @property
    def elapsed(self) -> float:
        end = self.finished if self.finished is not None else time.monotonic()
        return max(end - self.started, 0.0)

    @property
    def rate(self) -> float:
        """Average bytes per second."""
        elapsed = self.elapsed
        return self.done / elapsed if elapsed > 0 else 0.0


def chunk_image(image: bytes, chunk_size: int = PAYLOAD_SIZE) -> List[Tuple[int, bytes]]:
    """
    Split an image into (offset, chunk) tuples; the last chunk may be short.
    """
    return [
        (offset, image[offset:offset + chunk_size])
        for offset in range(0, len(image), chunk_size)
    ]


def pad_payload(chunk: bytes) -> bytes:
    """Right-pad a chunk to PAYLOAD_SIZE with 0x1A."""
    if len(chunk) > PAYLOAD_SIZE:
        raise ValueError(f"Chunk too large: {len(chunk)} bytes (max {PAYLOAD_SIZE})")
    return bytes(chunk) + bytes([PAD_BYTE]) * (PAYLOAD_SIZE - len(chunk))


def build_packet(seq: int, chunk: bytes) -> bytes:
    """
    Build one bulk packet.

    Args:
        seq: Sequence number (taken modulo 256)
        chunk: Up to PAYLOAD_SIZE image bytes

    Returns:
        PACKET_SIZE bytes
    """
    payload = pad_payload(chunk)
    seq &= 0xFF
    packet = bytes([SOH, seq, ~seq & 0xFF]) + payload + struct.pack(">H", crc16_xmodem(payload))
    assert len(packet) == PACKET_SIZE
    return packet


def parse_packet(packet: bytes) -> Tuple[int, bytes]:
    """
    Validate a bulk packet and return (seq, payload).

    Raises:
        ProtocolViolation: On bad framing, sequence complement or CRC
    """
    if len(packet) != PACKET_SIZE:
        raise ProtocolViolation(f"Packet length {len(packet)}, expected {PACKET_SIZE}")
    if packet[0] != SOH:
        raise ProtocolViolation(f"Packet does not start with SOH: 0x{packet[0]:02X}")
    seq, inverse = packet[1], packet[2]
    if seq ^ inverse != 0xFF:
        raise ProtocolViolation(f"Sequence complement mismatch: {seq:02X}/{inverse:02X}")
    payload = packet[3:3 + PAYLOAD_SIZE]
    (checksum,) = struct.unpack(">H", packet[-2:])
    if crc16_xmodem(payload) != checksum:
        raise ProtocolViolation(f"Packet {seq} CRC mismatch")
    return seq, bytes(payload)


def _describe_reply(value: int) -> str:
    if value in STATUS_MESSAGES:
        return f"0x{value:02X} ({status_name(value)})"
    return f"0x{value:02X}"


class XmodemSender:
    """Streams an image to the chip with per-packet retry."""

    def __init__(
        self,
        transport,
        poller: Optional[Poller] = None,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.transport = transport
        self.poller = poller or Poller(transport)
        self.max_retries = max_retries
        self.clock = clock
        self.session: Optional[TransferSession] = None

    def transfer(
        self,
        image: bytes,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> TransferSession:
        """
        Send a complete image.

        Args:
            image: Raw image bytes
            progress_cb: Optional callback(bytes_done, total_bytes) after every ACK

        Returns:
            Final TransferSession

        Raises:
            ChannelBusy: Chip never reported idle before the first packet
            RemoteCancelled: Chip answered CAN
            ProtocolViolation: Chip answered an unexpected byte
            RetryExhausted: Packet NAKed on every attempt
            ReplyTimeout: No reply to a packet
            TransferIncomplete: EOT was not acknowledged
        """
        self.transport.flush_input()
        self.poller.wait_busy()

        session = TransferSession(total=len(image), started=self.clock())
        self.session = session

        chunks = chunk_image(image)
        logger.info(f"Sending {len(image)} bytes in {len(chunks)} packets...")

        try:
            for index, (offset, chunk) in enumerate(chunks):
                seq = (index + 1) & 0xFF
                packet = build_packet(seq, chunk)
                session.retries += self._send_packet(packet, seq, offset)

                session.done += len(chunk)
                session.packets += 1
                if progress_cb:
                    progress_cb(session.done, session.total)
                logger.debug(
                    f"Packet seq={seq} offset=0x{offset:06X} acknowledged "
                    f"({session.done}/{session.total} bytes)"
                )
        except W80xError:
            self._abort()
            raise

        self._finish()
        session.finished = self.clock()
        logger.info(f"Transfer done: {session.done} bytes, {session.packets} packets")
        return session

    def _send_packet(self, packet: bytes, seq: int, offset: int) -> int:
        """Transmit one packet until ACKed; returns the number of NAKs seen."""
        naks = 0
        for attempt in range(1, self.max_retries + 1):
            self.transport.write(packet)
            value = self.poller.wait_read(1)[0]

            if value == ACK:
                return naks
            if value == NAK:
                naks += 1
                logger.warning(
                    f"Packet seq={seq} offset=0x{offset:06X} NAKed, "
                    f"retry {attempt}/{self.max_retries}"
                )
                continue
            if value == CAN:
                raise RemoteCancelled(f"Transfer cancelled by chip at offset 0x{offset:06X}")
            raise ProtocolViolation(
                f"Unexpected reply {_describe_reply(value)} to packet seq={seq}"
            )

        raise RetryExhausted(
            f"Packet seq={seq} offset=0x{offset:06X} rejected {self.max_retries} times"
        )

    def _finish(self) -> None:
        self.transport.write(bytes([EOT]))
        try:
            value = self.poller.wait_read(1)[0]
        except ReplyTimeout as exc:
            raise TransferIncomplete(f"No reply to EOT: {exc}") from exc
        if value != ACK:
            raise TransferIncomplete(f"EOT answered with {_describe_reply(value)}")

    def _abort(self) -> None:
        """
        Discard queued output, then send a best-effort EOT.

        Never replaces the error being propagated.
        """
        logger.warning("Aborting transfer")
        try:
            self.transport.flush_output()
            self.transport.write(bytes([EOT]))
        except W80xError as exc:
            logger.debug(f"EOT after abort failed: {exc}")
