"""
W80x Serial Transport Layer

Owns the serial handle shared by every protocol engine during a session.

This module provides:
- Serial port open/close (8N1, no flow control)
- Non-blocking partial reads and full writes
- Input/output flushing
- Reset line (RTS) control and baud reconfiguration
"""

import logging
from typing import Optional

import serial

from w80x_flasher.config import DEFAULT_BAUDRATE
from w80x_flasher.errors import TransportError

logger = logging.getLogger(__name__)


class W80xTransport:
    """
    Byte-stream handle for a W80x chip on a serial port.

    Reads never block: ``read(n)`` returns whatever is buffered, up to ``n``
    bytes, possibly nothing. Callers poll with their own bounded loops.

    Example:
        transport = W80xTransport(port="/dev/ttyUSB0")
        transport.open()
        transport.set_reset(True)
        transport.write(b"AT+Z\\r\\n")
        data = transport.read(12)
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        write_timeout: float = 2.0,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 115200)
            write_timeout: Write timeout in seconds (default 2.0)
        """
        self.port = port
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self.ser: Optional[serial.Serial] = None

    def open(self) -> None:
        """
        Open serial port and release the reset line.

        Raises:
            TransportError: If port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0,
                write_timeout=self.write_timeout,
                rtscts=False,
                dsrdtr=False,
            )
            self.ser.rts = False
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
            logger.debug(f"Opened {self.port} at {self.baudrate} bps")
        except serial.SerialException as e:
            raise TransportError(f"Cannot open port {self.port}: {e}")

    def close(self) -> None:
        """Close serial port."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")

    @property
    def is_open(self) -> bool:
        return bool(self.ser and self.ser.is_open)

    def __enter__(self) -> "W80xTransport":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> serial.Serial:
        if not self.ser or not self.ser.is_open:
            raise TransportError("Serial port not open")
        return self.ser

    def write(self, data: bytes) -> None:
        """
        Send raw bytes to the chip.

        Raises:
            TransportError: If the write fails or is incomplete
        """
        ser = self._require_open()
        try:
            written = ser.write(data)
            ser.flush()
        except serial.SerialException as e:
            raise TransportError(f"Write error: {e}")
        if written != len(data):
            raise TransportError(f"Incomplete write: sent {written}/{len(data)} bytes")
        logger.debug(f">>> {data[:32].hex().upper()}" + ("..." if len(data) > 32 else ""))

    def read(self, size: int) -> bytes:
        """
        Read up to ``size`` buffered bytes without blocking.

        Returns:
            Bytes received (may be empty)

        Raises:
            TransportError: If the read fails
        """
        ser = self._require_open()
        try:
            data = ser.read(size)
        except serial.SerialException as e:
            raise TransportError(f"Read error: {e}")
        if data:
            logger.debug(f"<<< {data.hex().upper()}")
        return data

    def flush_input(self) -> None:
        """Discard any stale bytes waiting in the receive buffer."""
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Flush error: {e}")

    def flush_output(self) -> None:
        """Discard bytes not yet transmitted."""
        ser = self._require_open()
        try:
            ser.reset_output_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Flush error: {e}")

    def set_reset(self, asserted: bool) -> None:
        """Drive the reset control line (RTS)."""
        ser = self._require_open()
        try:
            ser.rts = asserted
        except serial.SerialException as e:
            raise TransportError(f"Cannot drive reset line: {e}")
        logger.debug(f"Reset line {'asserted' if asserted else 'released'}")

    def set_baudrate(self, baudrate: int) -> None:
        """Reconfigure the host side line speed."""
        ser = self._require_open()
        try:
            ser.baudrate = baudrate
        except (serial.SerialException, ValueError) as e:
            raise TransportError(f"Cannot set speed {baudrate}: {e}")
        self.baudrate = baudrate
        logger.debug(f"Host speed set to {baudrate} bps")
