"""
Secboot entry.

Protocol sequence:
1. Assert reset (RTS), wait RESET_SETTLE, flush input
2. Send "AT+Z\\r\\n", release reset
3. Repeat: send three ESC bytes, read towards a 12-byte banner
4. Banner must start with "Secboot" (e.g. "Secboot V0.0")
"""

import logging
import time
from typing import Callable

from w80x_flasher.config import (
    BANNER_SETTLE,
    ESCAPE_INTERVAL,
    RESET_SETTLE,
    SECBOOT_ATTEMPTS,
)
from w80x_flasher.errors import BootloaderUnreachable

logger = logging.getLogger(__name__)

RESET_COMMAND = b"AT+Z\r\n"
ESCAPE_SEQUENCE = b"\x1b\x1b\x1b"
BANNER_PREFIX = b"Secboot"
BANNER_LENGTH = 12


def _consistent_with_prefix(buffer: bytearray) -> bool:
    head = bytes(buffer[:len(BANNER_PREFIX)])
    return BANNER_PREFIX.startswith(head)


def align_banner(buffer: bytearray) -> None:
    """Drop leading bytes until the buffer could still start a banner."""
    while buffer and not _consistent_with_prefix(buffer):
        index = buffer.find(BANNER_PREFIX[:1], 1)
        del buffer[:index if index > 0 else len(buffer)]


class SecbootEntry:
    """Brings the chip from reset into the secboot programming state."""

    def __init__(
        self,
        transport,
        attempts: int = SECBOOT_ATTEMPTS,
        escape_interval: float = ESCAPE_INTERVAL,
        reset_settle: float = RESET_SETTLE,
        banner_settle: float = BANNER_SETTLE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.attempts = attempts
        self.escape_interval = escape_interval
        self.reset_settle = reset_settle
        self.banner_settle = banner_settle
        self.sleep = sleep

    def enter(self) -> str:
        """
        Reset the chip and catch the secboot banner.

        Returns:
            Banner text (diagnostics only)

        Raises:
            BootloaderUnreachable: No valid banner after all attempts
            TransportError: Serial I/O failed
        """
        logger.info("Entering secboot...")
        self.transport.set_reset(True)
        self.sleep(self.reset_settle)

        self.transport.flush_input()
        self.transport.write(RESET_COMMAND)
        self.transport.set_reset(False)

        banner = bytearray()
        for _ in range(self.attempts):
            self.transport.write(ESCAPE_SEQUENCE)
            banner.extend(self.transport.read(BANNER_LENGTH - len(banner)))
            align_banner(banner)

            if len(banner) >= BANNER_LENGTH:
                text = bytes(banner[:BANNER_LENGTH]).decode("ascii", errors="replace").strip()
                logger.info(f"Secboot banner: {text}")
                self.sleep(self.banner_settle)
                return text

            self.sleep(self.escape_interval)

        seen = bytes(banner).hex() if banner else "nothing"
        raise BootloaderUnreachable(
            f"No secboot banner after {self.attempts} attempts (got {seen}). "
            "Is the chip connected and the reset line wired to RTS?"
        )
