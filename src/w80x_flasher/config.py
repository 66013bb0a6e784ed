"""
Programmer configuration.

All timing and retry numbers used on the wire are collected here. Timeouts are
iteration counts multiplied by a fixed sleep interval, so the real elapsed time
can exceed the nominal value when individual reads are slow.
"""

from dataclasses import dataclass

DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_BAUDRATE = 115200

# Bounded polling
WAIT_TIMES = 100
BUSY_INTERVAL = 0.120
READ_INTERVAL = 0.100

# Bulk transfer
MAX_RETRIES = 20

# Secboot entry
SECBOOT_ATTEMPTS = 500
ESCAPE_INTERVAL = 0.002
RESET_SETTLE = 0.005
BANNER_SETTLE = 1.0

# CRC16 seed for opcode frames (CCITT-FALSE)
FRAME_CHECKSUM_INIT = 0xFFFF


@dataclass(frozen=True)
class ProgrammerConfig:
    """
    Tunables for one programming session.

    Attributes:
        port: Serial device path
        baudrate: Initial line speed
        wait_times: Iteration cap for busy and reply polling
        busy_interval: Seconds between busy polls
        read_interval: Seconds between reply polls
        max_retries: Transmission attempts per bulk packet
        secboot_attempts: Escape/banner attempts when entering secboot
        escape_interval: Seconds between escape attempts
        reset_settle: Seconds the reset line stays asserted
        banner_settle: Seconds to wait after the banner is seen
        checksum_init: CRC16 seed used for opcode frames
    """
    port: str = DEFAULT_PORT
    baudrate: int = DEFAULT_BAUDRATE
    wait_times: int = WAIT_TIMES
    busy_interval: float = BUSY_INTERVAL
    read_interval: float = READ_INTERVAL
    max_retries: int = MAX_RETRIES
    secboot_attempts: int = SECBOOT_ATTEMPTS
    escape_interval: float = ESCAPE_INTERVAL
    reset_settle: float = RESET_SETTLE
    banner_settle: float = BANNER_SETTLE
    checksum_init: int = FRAME_CHECKSUM_INIT

    @property
    def busy_timeout(self) -> float:
        """Nominal wait-busy budget in seconds."""
        return self.wait_times * self.busy_interval

    @property
    def reply_timeout(self) -> float:
        """Nominal idle budget of wait-read in seconds."""
        return self.wait_times * self.read_interval


DEFAULT_CONFIG = ProgrammerConfig()
