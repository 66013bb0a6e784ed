"""
Virtual W80x chip.

Implements the transport interface (open/close/read/write/flush/reset/speed)
and answers like the secboot ROM: banner after reset + ESC, 'C' while idle,
opcode frames with CRC checking, and XMODEM packet reception. Used by the CLI
``--simulate`` flag and by the test-suite.
"""

import logging
import struct
from typing import Dict, List, Optional, Tuple

from w80x_flasher.config import DEFAULT_BAUDRATE
from w80x_flasher.errors import ProtocolViolation, TransportError
from w80x_flasher.protocol.fields import GAIN_LEN, MAC_LEN
from w80x_flasher.protocol.opcode import FRAME_SIGN, HEADER_SIZE, Opcode, decode_frame
from w80x_flasher.protocol.secboot import BANNER_LENGTH
from w80x_flasher.protocol.status import StatusCode
from w80x_flasher.protocol.xmodem import ACK, CAN, EOT, NAK, PACKET_SIZE, SOH, parse_packet

logger = logging.getLogger(__name__)

ESCAPE = 0x1B
DEFAULT_BANNER = b"Secboot V1.0"


class W80xSimulator:
    """
    In-memory chip speaking the secboot protocols.

    Fault injection:
        nak_packets: number of packet receptions answered with NAK first
        cancel_at_packet: 1-based packet number answered with CAN
        reply_overrides: fixed raw replies per opcode
        busy: never report idle 'C'
    """

    def __init__(
        self,
        bt_mac: bytes = bytes.fromhex("286DCD000001"),
        wifi_mac: bytes = bytes.fromhex("286DCD000002"),
        flash_id: bytes = b"FID:0B,15",
        rom_version: bytes = b"R:8",
        gain: bytes = bytes(range(GAIN_LEN)),
        banner: bytes = DEFAULT_BANNER,
        in_secboot: bool = True,
        nak_packets: int = 0,
        cancel_at_packet: Optional[int] = None,
        reply_overrides: Optional[Dict[Opcode, bytes]] = None,
        busy: bool = False,
    ):
        if len(banner) != BANNER_LENGTH:
            raise ValueError(f"banner must be {BANNER_LENGTH} bytes")
        self.bt_mac = bt_mac
        self.wifi_mac = wifi_mac
        self.flash_id = flash_id
        self.rom_version = rom_version
        self.gain = gain
        self.banner = banner
        self.state = "secboot" if in_secboot else "running"
        self.nak_packets = nak_packets
        self.cancel_at_packet = cancel_at_packet
        self.reply_overrides = dict(reply_overrides or {})
        self.busy = busy

        self.port = "SIMULATED"
        self.baudrate = DEFAULT_BAUDRATE
        self.chip_speed = DEFAULT_BAUDRATE
        self.erased: List[Tuple[int, int]] = []
        self.flashed: Optional[bytes] = None
        self.packets_received = 0
        self.reboots = 0
        self.commands: List[Opcode] = []
        self.last_status = StatusCode.COMPLETE

        self._open = False
        self._rx = bytearray()
        self._tx = bytearray()
        self._packets: List[bytes] = []
        self._last_seq = 0

    # transport interface

    def open(self) -> None:
        self._open = True
        logger.debug("Simulated chip connected")

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def _require_open(self) -> None:
        if not self._open:
            raise TransportError("Serial port not open")

    def flush_input(self) -> None:
        self._require_open()
        self._tx.clear()

    def flush_output(self) -> None:
        self._require_open()

    def set_reset(self, asserted: bool) -> None:
        self._require_open()
        if asserted:
            self.state = "reset"
            self._rx.clear()
            self._tx.clear()
        elif self.state == "reset":
            self.state = "running"

    def set_baudrate(self, baudrate: int) -> None:
        self._require_open()
        self.baudrate = baudrate

    def write(self, data: bytes) -> None:
        self._require_open()
        self._rx.extend(data)
        self._process()

    def read(self, size: int) -> bytes:
        self._require_open()
        if size <= 0:
            return b""
        if self._tx:
            data = bytes(self._tx[:size])
            del self._tx[:size]
            return data
        if self.state == "secboot" and not self.busy:
            return bytes([StatusCode.COMPLETE])
        return b""

    # chip side

    def _reply(self, data: bytes) -> None:
        self._tx.extend(data)

    def _process(self) -> None:
        while self._rx:
            if self.state != "secboot":
                byte = self._rx.pop(0)
                if byte == ESCAPE and self.state == "running":
                    self.state = "secboot"
                    self._reply(self.banner)
                continue

            lead = self._rx[0]
            if lead == FRAME_SIGN:
                if len(self._rx) < HEADER_SIZE:
                    return
                size = HEADER_SIZE + self._rx[1]
                if len(self._rx) < size:
                    return
                frame = bytes(self._rx[:size])
                del self._rx[:size]
                self._handle_frame(frame)
            elif lead == SOH:
                if len(self._rx) < PACKET_SIZE:
                    return
                packet = bytes(self._rx[:PACKET_SIZE])
                del self._rx[:PACKET_SIZE]
                self._handle_packet(packet)
            elif lead == EOT:
                self._rx.pop(0)
                self._handle_eot()
            else:
                self._rx.pop(0)

    def _status(self, status: int) -> None:
        self.last_status = status
        self._reply(bytes([status]))

    def _handle_frame(self, frame: bytes) -> None:
        try:
            decoded = decode_frame(frame)
        except ProtocolViolation as exc:
            logger.debug(f"Simulator rejected frame: {exc}")
            self._status(StatusCode.COMMAND_CRC)
            return

        try:
            opcode = Opcode.from_code(decoded.opcode)
        except ValueError:
            self._status(StatusCode.BAD_PARAMETER)
            return
        self.commands.append(opcode)

        if len(decoded.params) != opcode.param_length:
            self._status(StatusCode.BAD_PARAMETER)
            return
        if opcode in self.reply_overrides:
            self._reply(self.reply_overrides[opcode])
            return

        params = decoded.params
        if opcode is Opcode.GET_BT_MAC:
            self._reply(b"MAC:" + self.bt_mac.hex().upper().encode() + b"\r\n")
        elif opcode is Opcode.GET_WIFI_MAC:
            self._reply(b"MAC:" + self.wifi_mac.hex().upper().encode() + b"\r\n")
        elif opcode is Opcode.GET_FLASH_ID:
            self._reply(self.flash_id[:opcode.reply_length].ljust(opcode.reply_length, b"\n"))
        elif opcode is Opcode.GET_ROM_VERSION:
            self._reply(self.rom_version[:opcode.reply_length].ljust(opcode.reply_length, b"\n"))
        elif opcode is Opcode.GET_GAIN:
            text = b"G:" + self.gain.hex().upper().encode()
            self._reply(text[:opcode.reply_length].ljust(opcode.reply_length, b"\n"))
        elif opcode is Opcode.GET_ERROR:
            self._reply(bytes([self.last_status]))
        elif opcode is Opcode.SET_SPEED:
            (self.chip_speed,) = struct.unpack("<I", params)
            self._reply(bytes([ACK]))
        elif opcode is Opcode.ERASE_FLASH:
            self.erased.append(struct.unpack("<HH", params))
            self._status(StatusCode.COMPLETE)
        elif opcode is Opcode.SET_BT_MAC:
            self.bt_mac = params[:MAC_LEN]
            self._status(StatusCode.COMPLETE)
        elif opcode is Opcode.SET_WIFI_MAC:
            self.wifi_mac = params[:MAC_LEN]
            self._status(StatusCode.COMPLETE)
        elif opcode is Opcode.SET_GAIN:
            self.gain = params
            self._status(StatusCode.COMPLETE)
        elif opcode is Opcode.REBOOT:
            self.reboots += 1
            self.state = "running"

    def _handle_packet(self, packet: bytes) -> None:
        self.packets_received += 1
        try:
            seq, payload = parse_packet(packet)
        except ProtocolViolation as exc:
            logger.debug(f"Simulator NAK: {exc}")
            self._reply(bytes([NAK]))
            return

        if self.nak_packets > 0:
            self.nak_packets -= 1
            self._reply(bytes([NAK]))
            return

        number = len(self._packets) + 1
        if self.cancel_at_packet is not None and number == self.cancel_at_packet:
            self._reply(bytes([CAN]))
            return

        if self._packets and seq == self._last_seq:
            self._reply(bytes([ACK]))
            return
        if seq != number & 0xFF:
            self.last_status = StatusCode.BAD_INDEX
            self._reply(bytes([CAN]))
            return

        self._packets.append(payload)
        self._last_seq = seq
        self._reply(bytes([ACK]))

    def _handle_eot(self) -> None:
        self.flashed = b"".join(self._packets)
        self._packets = []
        self._last_seq = 0
        self._reply(bytes([ACK]))
